"""
Health check endpoint.

GET /health — checks MongoDB connectivity and the cleanup scheduler.
Rules:
- MongoDB failure → "unhealthy" (503) — the app cannot function without it.
- Cleanup scheduler not running → "degraded" (200) — requests still work,
  expired registrations just accumulate until it is back.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from schemas.dto.responses.common import HealthResponse
from shared.logging import get_logger

log = get_logger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> JSONResponse:
    checks: dict[str, str] = {}
    overall = "healthy"

    try:
        db = request.app.state.db
        await db.client.admin.command("ping")
        checks["mongodb"] = "ok"
    except Exception as e:
        log.warning("health_mongodb_failed", error_type=type(e).__name__)
        checks["mongodb"] = "error"
        overall = "unhealthy"

    scheduler = getattr(request.app.state, "cleanup_scheduler", None)
    if scheduler is not None and scheduler.running:
        checks["cleanup_scheduler"] = "running"
    else:
        checks["cleanup_scheduler"] = "stopped"
        if overall == "healthy":
            overall = "degraded"

    status_code = 503 if overall == "unhealthy" else 200
    return JSONResponse(
        status_code=status_code,
        content={"status": overall, "checks": checks},
    )
