"""
Operational routes for the account cleanup scheduler.

GET  /api/admin/cleanup-stats   — counts plus scheduler run state
POST /api/admin/manual-cleanup  — run one sweep now

Both require the X-Admin-Token header when ADMIN_TOKEN is configured.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from dependencies import SchedulerDep, require_admin
from schemas.dto.responses.common import (
    CleanupStats,
    CleanupStatsResponse,
    SweepResponse,
)

router = APIRouter(
    prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)]
)


@router.get("/cleanup-stats", response_model=CleanupStatsResponse)
async def cleanup_stats(scheduler: SchedulerDep) -> CleanupStatsResponse:
    stats = await scheduler.get_stats()
    return CleanupStatsResponse(stats=CleanupStats(**stats))


@router.post("/manual-cleanup", response_model=SweepResponse)
async def manual_cleanup(scheduler: SchedulerDep) -> SweepResponse:
    summary = await scheduler.manual_cleanup()
    return SweepResponse(
        message=f"Cleanup completed: {summary.successful} accounts deleted",
        summary=summary.to_dict(),
    )
