"""
Application error hierarchy and FastAPI exception handlers.

AppError is the base for all typed errors. They are operational: expected,
recoverable and safe to show to the caller, so the global handler renders
them verbatim as JSON.

Anything else is a programming or infrastructure failure. It is caught at a
single boundary, logged with full detail and surfaced as a generic message in
production (exception detail is included in other environments).
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from shared.logging import get_logger

log = get_logger(__name__)


class AppError(Exception):
    """Base application error. All typed errors inherit from this."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details

    def to_dict(self) -> dict:
        payload: dict = {"success": False, "error": self.message, "code": self.error_code}
        if self.field is not None:
            payload["field"] = self.field
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(AppError):
    status_code = 400
    error_code = "validation_error"


class AuthenticationError(AppError):
    status_code = 401
    error_code = "authentication_error"


class InvalidCredentialsError(AuthenticationError):
    error_code = "invalid_credentials"


class TokenExpiredError(AuthenticationError):
    error_code = "token_expired"


class TokenInvalidError(AuthenticationError):
    error_code = "invalid_token"


class TokenNotActiveError(AuthenticationError):
    error_code = "token_not_active"


class ForbiddenError(AppError):
    status_code = 403
    error_code = "forbidden"


class NotFoundError(AppError):
    status_code = 404
    error_code = "not_found"


class ConflictError(AppError):
    status_code = 409
    error_code = "conflict"


class InvalidOtpError(AppError):
    status_code = 400
    error_code = "invalid_or_expired_otp"


class TooManyAttemptsError(AppError):
    status_code = 400
    error_code = "too_many_attempts"


class RetryAfterError(AppError):
    """Error that tells the caller how long to wait (seconds) before retrying."""

    status_code = 429

    def __init__(
        self,
        message: str,
        *,
        retry_after: int,
        field: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> None:
        merged = {"retry_after": retry_after}
        if details:
            merged.update(details)
        super().__init__(message, field=field, details=merged)
        self.retry_after = retry_after


class RateLimitError(RetryAfterError):
    error_code = "rate_limit_exceeded"


class AccountLockedError(RetryAfterError):
    error_code = "account_locked"


class UpstreamUnavailableError(AppError):
    status_code = 503
    error_code = "upstream_unavailable"


class StoreTimeoutError(AppError):
    status_code = 504
    error_code = "store_timeout"


def register_error_handlers(app: FastAPI, *, expose_details: bool = False) -> None:
    """Register global exception handlers on the FastAPI app.

    ``expose_details`` adds the exception type and message to 500 responses;
    it must stay off in production.
    """

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        headers = None
        if isinstance(exc, RetryAfterError):
            headers = {"Retry-After": str(exc.retry_after)}
        return JSONResponse(
            status_code=exc.status_code, content=exc.to_dict(), headers=headers
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        field = None
        if errors and errors[0].get("loc"):
            field = str(errors[0]["loc"][-1])
        error = ValidationError("Invalid request body", field=field)
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        # Sentry integration: if sentry_sdk is initialized it will auto-capture
        # unhandled exceptions before this handler fires.
        log.error(
            "unhandled_exception",
            method=request.method,
            path=request.url.path,
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=exc,
        )
        content: dict = {
            "success": False,
            "error": "An internal server error occurred.",
            "code": "internal_error",
        }
        if expose_details:
            content["details"] = {"type": type(exc).__name__, "message": str(exc)}
        return JSONResponse(status_code=500, content=content)
