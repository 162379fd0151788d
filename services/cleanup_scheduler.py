"""
Background reclamation of accounts that never finished signup.

An account moves Unverified (live window) -> Unverified (expired) -> Deleted
purely by wall-clock time. The scheduler owns one asyncio task that sweeps
immediately on start and then every ``interval_seconds``.

Each candidate account is claimed with a conditional update on
``pending_deletion`` before anything is deleted; that flag is the only
guard against a manual sweep and the periodic sweep overlapping. Every
account is processed in its own try block so one failure never aborts the
rest of the sweep; a failed account is simply picked up again next time.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Optional

from repositories.protocol import OtpStore, UserStore
from shared.datetime_utils import Clock, utcnow
from shared.logging import get_logger

log = get_logger(__name__)

CLEANUP_INTERVAL_SECONDS = 60.0
SWEEP_BATCH_SIZE = 500

OUTCOME_SUCCESS = "success"
OUTCOME_FAILED = "failed"
OUTCOME_ERROR = "error"


@dataclass
class AccountOutcome:
    user_id: str
    status: str
    otps_deleted: int = 0
    reason: Optional[str] = None


@dataclass
class SweepSummary:
    started_at: datetime
    total: int = 0
    successful: int = 0
    failed: int = 0
    errors: int = 0
    lockouts_cleared: int = 0
    duration_ms: int = 0
    outcomes: list[AccountOutcome] = field(default_factory=list)

    def record(self, outcome: AccountOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.status == OUTCOME_SUCCESS:
            self.successful += 1
        elif outcome.status == OUTCOME_FAILED:
            self.failed += 1
        else:
            self.errors += 1

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        return data


class AccountCleanupScheduler:
    def __init__(
        self,
        users: UserStore,
        otps: OtpStore,
        *,
        interval_seconds: float = CLEANUP_INTERVAL_SECONDS,
        batch_size: int = SWEEP_BATCH_SIZE,
        clock: Clock = utcnow,
    ) -> None:
        self._users = users
        self._otps = otps
        self._interval = interval_seconds
        self._batch_size = batch_size
        self._clock = clock
        self._task: Optional[asyncio.Task[None]] = None
        self._next_run_at: Optional[float] = None
        self._last_run_at: Optional[datetime] = None
        self._last_summary: Optional[SweepSummary] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_summary(self) -> Optional[SweepSummary]:
        return self._last_summary

    async def start(self) -> None:
        if self.running:
            log.warning("cleanup_scheduler_already_running")
            return
        self._task = asyncio.create_task(self._loop(), name="account-cleanup")
        log.info("cleanup_scheduler_started", interval_seconds=self._interval)

    async def stop(self) -> None:
        if not self.running:
            log.warning("cleanup_scheduler_not_running")
            self._task = None
            return
        assert self._task is not None
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        self._next_run_at = None
        log.info("cleanup_scheduler_stopped")

    async def _loop(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            try:
                await self.run_sweep()
            except Exception:
                log.error("cleanup_sweep_failed", exc_info=True)
            self._next_run_at = loop.time() + self._interval
            await asyncio.sleep(self._interval)

    async def run_sweep(self) -> SweepSummary:
        """Delete every expired unverified account and its OTP records."""
        now = self._clock()
        started = asyncio.get_running_loop().time()
        summary = SweepSummary(started_at=now)

        candidates = await self._users.list_expired_unverified(now, limit=self._batch_size)
        summary.total = len(candidates)
        for user in candidates:
            summary.record(await self._reclaim(str(user.id), user.email, now))

        try:
            summary.lockouts_cleared = await self._users.clear_expired_lockouts(now)
        except Exception:
            log.error("lockout_maintenance_failed", exc_info=True)

        summary.duration_ms = int((asyncio.get_running_loop().time() - started) * 1000)
        self._last_run_at = now
        self._last_summary = summary

        if summary.total or summary.lockouts_cleared:
            log.info(
                "cleanup_sweep_completed",
                total=summary.total,
                successful=summary.successful,
                failed=summary.failed,
                errors=summary.errors,
                lockouts_cleared=summary.lockouts_cleared,
                duration_ms=summary.duration_ms,
            )
        else:
            log.debug("cleanup_sweep_completed", total=0)
        return summary

    async def _reclaim(self, user_id: str, email: str, now: datetime) -> AccountOutcome:
        claimed = False
        try:
            if not await self._users.claim_for_deletion(user_id, now):
                return AccountOutcome(user_id, OUTCOME_FAILED, reason="already_claimed")
            claimed = True
            otps_deleted = await self._otps.delete_for_email(email)
            if not await self._users.delete(user_id):
                return AccountOutcome(
                    user_id, OUTCOME_FAILED, otps_deleted, reason="already_deleted"
                )
            log.info("unverified_account_deleted", user_id=user_id, otps_deleted=otps_deleted)
            return AccountOutcome(user_id, OUTCOME_SUCCESS, otps_deleted)
        except Exception as exc:
            log.error(
                "unverified_account_delete_failed",
                user_id=user_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            if claimed:
                await self._release_claim(user_id, now)
            return AccountOutcome(user_id, OUTCOME_ERROR, reason=type(exc).__name__)

    async def _release_claim(self, user_id: str, now: datetime) -> None:
        # a claimed account is invisible to later sweeps until released
        try:
            await self._users.release_deletion_claim(user_id, now)
        except Exception:
            log.error("deletion_claim_release_failed", user_id=user_id, exc_info=True)

    async def manual_cleanup(self) -> SweepSummary:
        log.info("manual_cleanup_triggered")
        return await self.run_sweep()

    async def get_stats(self) -> dict[str, Any]:
        now = self._clock()
        total, expired, pending = await asyncio.gather(
            self._users.count_unverified(),
            self._users.count_expired_unverified(now),
            self._users.count_pending_expiry(now),
        )
        next_cleanup_in = None
        if self.running and self._next_run_at is not None:
            remaining = self._next_run_at - asyncio.get_running_loop().time()
            next_cleanup_in = max(0, int(remaining))
        return {
            "total_unverified": total,
            "expired": expired,
            "pending_expiry": pending,
            "service_running": self.running,
            "interval_seconds": self._interval,
            "next_cleanup_in": next_cleanup_in,
            "last_run_at": self._last_run_at.isoformat() if self._last_run_at else None,
        }
