"""
Request DTOs for the password-reset endpoints.

ForgotPasswordRequest   — POST /api/auth/forgot-password
VerifyResetOtpRequest   — POST /api/auth/verify-reset-otp
ResetPasswordRequest    — POST /api/auth/reset-password
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ForgotPasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None


class VerifyResetOtpRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    otp: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    otp: Optional[str] = None
    new_password: Optional[str] = Field(default=None, alias="newPassword")
