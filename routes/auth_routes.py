"""
Authentication routes under /api/auth.

POST /register, /verify-signup, /resend-otp, /login   — per-IP endpoint limit
POST /verify-password, /change-password, /set-password — bearer token required
GET  /google, /google/callback                         — Google sign-in
"""

from __future__ import annotations

import json
from urllib.parse import urlencode

from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import RedirectResponse

from dependencies import (
    AuthServiceDep,
    ClientIp,
    CurrentUser,
    SettingsDep,
    enforce_endpoint_limit,
)
from errors import AppError, UpstreamUnavailableError
from infrastructure.identity.protocol import ExternalIdentityError, IdentityAdapter
from schemas.dto.requests.auth import (
    ChangePasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResendOtpRequest,
    SetPasswordRequest,
    VerifyPasswordRequest,
    VerifySignupRequest,
)
from schemas.dto.responses.auth import (
    AuthResponse,
    OtpSentResponse,
    RegisterResponse,
    UserSummary,
)
from schemas.dto.responses.common import ErrorResponse, MessageResponse
from shared.logging import get_logger

log = get_logger(__name__)

router = APIRouter(
    prefix="/api/auth",
    tags=["auth"],
    responses={400: {"model": ErrorResponse}, 429: {"model": ErrorResponse}},
)

_limited = [Depends(enforce_endpoint_limit)]


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    response_model=RegisterResponse,
    dependencies=_limited,
)
async def register(
    body: RegisterRequest, auth: AuthServiceDep, ip: ClientIp
) -> RegisterResponse:
    pending = await auth.register(
        body.first_name, body.last_name, body.email, body.password, body.age, ip
    )
    return RegisterResponse(email=pending.email, expires_in=pending.expires_in)


@router.post("/verify-signup", response_model=AuthResponse, dependencies=_limited)
async def verify_signup(body: VerifySignupRequest, auth: AuthServiceDep) -> AuthResponse:
    result = await auth.verify_signup(body.email, body.otp)
    return AuthResponse(token=result.token, user=UserSummary.from_user(result.user))


@router.post("/resend-otp", response_model=OtpSentResponse, dependencies=_limited)
async def resend_otp(
    body: ResendOtpRequest, auth: AuthServiceDep, ip: ClientIp
) -> OtpSentResponse:
    dispatch = await auth.resend_otp(body.email, body.otp_type, ip)
    return OtpSentResponse(
        message="OTP resent successfully",
        email=dispatch.email,
        expires_in=dispatch.expires_in,
    )


@router.post("/login", response_model=AuthResponse, dependencies=_limited)
async def login(body: LoginRequest, auth: AuthServiceDep) -> AuthResponse:
    result = await auth.login(body.email, body.password)
    return AuthResponse(token=result.token, user=UserSummary.from_user(result.user))


@router.post("/verify-password", response_model=MessageResponse)
async def verify_password(
    body: VerifyPasswordRequest, user: CurrentUser, auth: AuthServiceDep
) -> MessageResponse:
    await auth.verify_password(user.id, body.password)
    return MessageResponse(success=True, message="Password verified")


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    body: ChangePasswordRequest, user: CurrentUser, auth: AuthServiceDep
) -> MessageResponse:
    await auth.change_password(user.id, body.current_password, body.new_password)
    return MessageResponse(success=True, message="Password changed successfully")


@router.post("/set-password", response_model=MessageResponse)
async def set_password(
    body: SetPasswordRequest, user: CurrentUser, auth: AuthServiceDep
) -> MessageResponse:
    await auth.set_password(user.id, body.new_password)
    return MessageResponse(success=True, message="Password set successfully")


# ── Google sign-in ───────────────────────────────────────────────────────────


def _google_client(request: Request):
    oauth = getattr(request.app.state, "oauth", None)
    if oauth is None:
        raise UpstreamUnavailableError("Google sign-in is not configured")
    return oauth.google


def _login_error(client_url: str, reason: str) -> RedirectResponse:
    return RedirectResponse(f"{client_url}/login?{urlencode({'error': reason})}")


@router.get("/google")
async def google_login(request: Request, settings: SettingsDep):
    client = _google_client(request)
    redirect_uri = settings.oauth.google_oauth_redirect_uri or str(
        request.url_for("google_callback")
    )
    log.debug("google_oauth_started")
    return await client.authorize_redirect(request, redirect_uri)


@router.get("/google/callback", name="google_callback")
async def google_callback(
    request: Request, settings: SettingsDep, auth: AuthServiceDep
) -> RedirectResponse:
    client_url = settings.client_url.rstrip("/")

    provider_error = request.query_params.get("error")
    if provider_error:
        log.error("google_oauth_error", error=provider_error)
        return _login_error(client_url, "google_auth_failed")

    client = _google_client(request)
    try:
        token = await client.authorize_access_token(request)
    except OAuthError as e:
        log.error("google_oauth_token_failed", error=e.error)
        return _login_error(client_url, "auth_failed")

    userinfo = token.get("userinfo")
    if userinfo is None:
        userinfo = await client.userinfo(token=token)

    adapter: IdentityAdapter = request.app.state.identity_adapter

    try:
        identity = adapter.resolve(dict(userinfo))
    except ExternalIdentityError as e:
        log.error("google_identity_rejected", reason=e.reason)
        return _login_error(client_url, e.reason)

    try:
        result = await auth.login_with_external_identity(identity)
    except AppError as e:
        log.error("google_sign_in_failed", error_code=e.error_code)
        return _login_error(client_url, "auth_failed")

    user_data = {
        "id": str(result.user.id),
        "name": result.user.name,
        "email": result.user.email,
        "authMethod": result.user.auth_method,
    }
    query = urlencode({"token": result.token, "user": json.dumps(user_data)})
    return RedirectResponse(f"{client_url}/google-auth?{query}")
