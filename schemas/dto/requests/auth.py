"""
Request DTOs for authentication endpoints.

RegisterRequest         — POST /api/auth/register
VerifySignupRequest     — POST /api/auth/verify-signup
ResendOtpRequest        — POST /api/auth/resend-otp
LoginRequest            — POST /api/auth/login
VerifyPasswordRequest   — POST /api/auth/verify-password
ChangePasswordRequest   — POST /api/auth/change-password
SetPasswordRequest      — POST /api/auth/set-password

Fields are optional at this layer: presence and format are checked by the
auth service so every flow reports missing input the same way. camelCase
aliases match what the web client sends.
"""

from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class RegisterRequest(BaseModel):
    """Request body for POST /api/auth/register."""

    model_config = ConfigDict(populate_by_name=True)

    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    email: Optional[str] = None
    password: Optional[str] = None
    age: Optional[Union[int, str]] = None


class VerifySignupRequest(BaseModel):
    """Request body for POST /api/auth/verify-signup."""

    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    otp: Optional[str] = None


class ResendOtpRequest(BaseModel):
    """Request body for POST /api/auth/resend-otp.

    ``type`` is ``signup`` or ``reset``.
    """

    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    otp_type: Optional[str] = Field(default=None, alias="type")


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login."""

    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    password: Optional[str] = None


class VerifyPasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    password: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_password: Optional[str] = Field(default=None, alias="currentPassword")
    new_password: Optional[str] = Field(default=None, alias="newPassword")


class SetPasswordRequest(BaseModel):
    """Request body for POST /api/auth/set-password.

    Used by accounts created through Google that want a local password.
    """

    model_config = ConfigDict(populate_by_name=True)

    new_password: Optional[str] = Field(default=None, alias="newPassword")
