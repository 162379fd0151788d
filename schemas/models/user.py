"""
User document model.

Maps to the `users` MongoDB collection.

Two creation paths produce slightly different shapes:
- Password registration: auth_method "local", unverified, registration_expires
  set five minutes ahead until the signup OTP is confirmed
- External (Google) sign-in: auth_method "external", verified on creation,
  no password_hash

login_attempts / block_expires carry the brute-force lockout state and are
never part of a response projection.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from schemas.models.base import MongoBaseModel

AUTH_METHOD_LOCAL = "local"
AUTH_METHOD_EXTERNAL = "external"

DEFAULT_AGE = 18


class UserDoc(MongoBaseModel):
    """Document model for the `users` collection."""

    email: str
    name: str
    age: int = Field(default=DEFAULT_AGE, ge=13, le=120)
    about: str = Field(default="", max_length=500)
    password_hash: Optional[str] = None
    auth_method: str = AUTH_METHOD_LOCAL
    auth_providers: list[str] = []
    is_email_verified: bool = False
    registration_expires: Optional[datetime] = None
    pending_deletion: bool = False
    login_attempts: int = Field(default=0, ge=0)
    block_expires: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    @property
    def first_name(self) -> str:
        return self.name.split(" ", 1)[0] if self.name else ""

    @property
    def last_name(self) -> str:
        parts = self.name.split(" ", 1)
        return parts[1] if len(parts) > 1 else ""

    @property
    def has_local_password(self) -> bool:
        return self.auth_method == AUTH_METHOD_LOCAL and bool(self.password_hash)
