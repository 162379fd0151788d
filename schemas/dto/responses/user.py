"""Response DTOs for the user profile endpoints."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class ProfileResponse(BaseModel):
    """Public projection of a user (GET/PUT /api/users/profile)."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    first_name: str
    last_name: str
    email: str
    age: int
    about: str
    auth_method: str
    auth_providers: list[str]
    is_email_verified: bool
    has_password: bool
    created_at: Optional[str] = None
    last_login: Optional[str] = None


class ProfileEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    user: ProfileResponse
