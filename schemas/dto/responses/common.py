"""
Common response DTOs shared across multiple endpoints.

ErrorResponse        — standard error shape from AppError.to_dict()
HealthResponse       — GET /health
MessageResponse      — generic {success, message} shape used by many endpoints
CleanupStatsResponse — GET /api/admin/cleanup-stats
SweepResponse        — POST /api/admin/manual-cleanup
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class ErrorResponse(BaseModel):
    """Standard error JSON body produced by the AppError exception handler."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = False
    error: str
    code: str
    field: Optional[str] = None
    details: Optional[Any] = None


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    model_config = ConfigDict(populate_by_name=True)

    status: str
    checks: dict[str, str]


class MessageResponse(BaseModel):
    """Generic success/message response returned by several endpoints."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: Optional[str] = None


class CleanupStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_unverified: int
    expired: int
    pending_expiry: int
    service_running: bool
    interval_seconds: float
    next_cleanup_in: Optional[int] = None
    last_run_at: Optional[str] = None


class CleanupStatsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    stats: CleanupStats


class SweepResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    summary: dict[str, Any]
