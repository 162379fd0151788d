"""
Response DTOs for authentication endpoints.

UserSummary              — user block embedded in token responses
AuthResponse             — verify-signup / login (200)
RegisterResponse         — register (201)
OtpSentResponse          — resend-otp / forgot-password (200)
ResetOtpVerifiedResponse — verify-reset-otp (200)
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict

from schemas.models.user import UserDoc


class UserSummary(BaseModel):
    """Minimal user shape returned with a token; no credential fields."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    email: str
    age: Optional[int] = None
    auth_method: str

    @classmethod
    def from_user(cls, user: UserDoc) -> "UserSummary":
        return cls(
            id=str(user.id),
            name=user.name,
            email=user.email,
            age=user.age,
            auth_method=user.auth_method,
        )


class AuthResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    token: str
    user: UserSummary


class RegisterResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str = "OTP sent to your email"
    email: str
    expires_in: int


class OtpSentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    email: str
    expires_in: int


class ResetOtpVerifiedResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str = "OTP verified successfully"
    email: str
    verified: bool = True
