"""
Password-reset routes under /api/auth.

POST /forgot-password   — send a reset code to a verified account
POST /verify-reset-otp  — check a reset code without consuming it
POST /reset-password    — consume the code and store the new password
"""

from __future__ import annotations

from fastapi import APIRouter

from dependencies import AuthServiceDep, ClientIp
from schemas.dto.requests.otp import (
    ForgotPasswordRequest,
    ResetPasswordRequest,
    VerifyResetOtpRequest,
)
from schemas.dto.responses.auth import OtpSentResponse, ResetOtpVerifiedResponse
from schemas.dto.responses.common import MessageResponse

router = APIRouter(prefix="/api/auth", tags=["password-reset"])


@router.post("/forgot-password", response_model=OtpSentResponse)
async def forgot_password(
    body: ForgotPasswordRequest, auth: AuthServiceDep, ip: ClientIp
) -> OtpSentResponse:
    dispatch = await auth.forgot_password(body.email, ip)
    return OtpSentResponse(
        message="OTP sent successfully to your email address",
        email=dispatch.email,
        expires_in=dispatch.expires_in,
    )


@router.post("/verify-reset-otp", response_model=ResetOtpVerifiedResponse)
async def verify_reset_otp(
    body: VerifyResetOtpRequest, auth: AuthServiceDep
) -> ResetOtpVerifiedResponse:
    result = await auth.verify_reset_otp(body.email, body.otp)
    return ResetOtpVerifiedResponse(email=result.email, verified=result.verified)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    body: ResetPasswordRequest, auth: AuthServiceDep
) -> MessageResponse:
    await auth.reset_password(body.email, body.otp, body.new_password)
    return MessageResponse(
        success=True,
        message="Password reset successfully. You can now login with your new password.",
    )
