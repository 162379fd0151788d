"""
One-time passcode document model.

Maps to the `otps` MongoDB collection.

Used for both signup verification and password reset codes.
code_hash stores SHA-256(code); the plain code is never stored.
A TTL index purges records OTP_TTL_SECONDS after created_at, and every read
also filters on created_at so expiry does not depend on the TTL monitor.
attempts counts reset verification tries (OTP_MAX_ATTEMPTS before the record
is dead).
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from schemas.models.base import MongoBaseModel

OTP_TYPE_SIGNUP = "signup"
OTP_TYPE_RESET = "reset"
OTP_TYPES = (OTP_TYPE_SIGNUP, OTP_TYPE_RESET)

OTP_TTL_SECONDS = 300
OTP_MAX_ATTEMPTS = 3


class OtpDoc(MongoBaseModel):
    """Document model for the `otps` collection."""

    email: str
    code_hash: str
    otp_type: str
    ip_address: Optional[str] = None
    attempts: int = Field(default=0, ge=0)
    verified: bool = False
    created_at: Optional[datetime] = None

    @property
    def exhausted(self) -> bool:
        return self.attempts >= OTP_MAX_ATTEMPTS
