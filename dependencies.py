"""
FastAPI dependency providers.

Services are built once in the app lifespan and stored on ``app.state``;
these providers hand them to route handlers through ``Depends()``.
"""

from __future__ import annotations

import hmac
from typing import Annotated, Optional

from fastapi import Depends, Header, Request

from config import AppSettings
from errors import AuthenticationError, RateLimitError
from infrastructure.rate_limiter.protocol import RateLimitExceeded
from infrastructure.rate_limiter.registry import RateLimiters
from services.account_service import AccountService
from services.auth_service import AuthService
from services.authenticator import AuthenticatedUser, RequestAuthenticator
from services.cleanup_scheduler import AccountCleanupScheduler
from shared.ip_utils import get_client_ip
from shared.logging import get_logger

log = get_logger(__name__)


def get_settings(request: Request) -> AppSettings:
    """Return the AppSettings instance stored on app.state."""
    return request.app.state.settings


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_account_service(request: Request) -> AccountService:
    return request.app.state.account_service


def get_authenticator(request: Request) -> RequestAuthenticator:
    return request.app.state.authenticator


def get_cleanup_scheduler(request: Request) -> AccountCleanupScheduler:
    return request.app.state.cleanup_scheduler


def get_rate_limiters(request: Request) -> RateLimiters:
    return request.app.state.rate_limiters


def client_ip(request: Request) -> str:
    return get_client_ip(request) or "unknown"


async def get_current_user(
    request: Request,
    authorization: Annotated[Optional[str], Header()] = None,
) -> AuthenticatedUser:
    """Authenticate the bearer token and expose the caller on ``request.state``."""
    user = await get_authenticator(request).authenticate(authorization)
    request.state.user = user
    return user


async def enforce_endpoint_limit(request: Request) -> None:
    """Per-IP throttle shared by the register / login / verify / resend routes."""
    limiter = get_rate_limiters(request).endpoint
    try:
        await limiter.consume(client_ip(request))
    except RateLimitExceeded as exc:
        seconds = exc.retry_after_seconds
        log.warning("endpoint_rate_limited", path=request.url.path, retry_after=seconds)
        raise RateLimitError(
            f"Too many requests. Please try again in {seconds} seconds.",
            retry_after=seconds,
        ) from exc


async def require_admin(
    request: Request,
    x_admin_token: Annotated[Optional[str], Header()] = None,
) -> None:
    """Guard the operational endpoints when ADMIN_TOKEN is configured."""
    expected = get_settings(request).admin_token
    if not expected:
        return
    if not x_admin_token or not hmac.compare_digest(x_admin_token, expected):
        raise AuthenticationError("Admin token required")


CurrentUser = Annotated[AuthenticatedUser, Depends(get_current_user)]
AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
AccountServiceDep = Annotated[AccountService, Depends(get_account_service)]
SchedulerDep = Annotated[AccountCleanupScheduler, Depends(get_cleanup_scheduler)]
SettingsDep = Annotated[AppSettings, Depends(get_settings)]
ClientIp = Annotated[str, Depends(client_ip)]
