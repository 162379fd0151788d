"""
Request logging middleware for FastAPI.

Provides:
- Request ID generation for correlation (returned as X-Request-ID)
- Request context bound through structlog.contextvars, so every log line
  emitted while handling the request carries it
- Completion logging with timing and a status-based level
"""

from __future__ import annotations

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from shared.ip_utils import get_client_ip
from shared.logging import get_logger, hash_ip

log = get_logger("blog_auth.request")


def generate_request_id() -> str:
    """Generate a unique request ID for correlation."""
    return f"req_{uuid.uuid4().hex[:12]}"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        started = time.perf_counter()
        request_id = generate_request_id()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            ip_hash=hash_ip(get_client_ip(request)),
        )

        response = await call_next(request)

        duration_ms = int((time.perf_counter() - started) * 1000)
        if response.status_code >= 500:
            log_fn = log.error
        elif response.status_code >= 400:
            log_fn = log.warning
        else:
            log_fn = log.info
        log_fn(
            "request_completed",
            status_code=response.status_code,
            duration_ms=duration_ms,
        )

        response.headers["X-Request-ID"] = request_id
        structlog.contextvars.clear_contextvars()
        return response
