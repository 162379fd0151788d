"""Unit tests for the unverified-account cleanup scheduler."""

import asyncio
from datetime import timedelta

import pytest

from schemas.models.user import UserDoc
from services.cleanup_scheduler import AccountCleanupScheduler
from tests.fakes import START


@pytest.fixture
def scheduler(users, otps, clock):
    return AccountCleanupScheduler(users, otps, interval_seconds=60, clock=clock)


async def _unverified(users, email, expires_in_minutes):
    return await users.create(
        UserDoc(
            email=email,
            name="Pending User",
            registration_expires=START + timedelta(minutes=expires_in_minutes),
            created_at=START,
        )
    )


class TestRunSweep:
    async def test_deletes_expired_accounts_and_their_otps(self, scheduler, users, otps):
        expired = await _unverified(users, "old@example.com", -1)
        live = await _unverified(users, "new@example.com", 3)
        await otps.upsert("old@example.com", "signup", "h", None, START)
        await otps.upsert("new@example.com", "signup", "h", None, START)

        summary = await scheduler.run_sweep()

        assert summary.total == 1
        assert summary.successful == 1
        assert summary.outcomes[0].user_id == str(expired.id)
        assert summary.outcomes[0].otps_deleted == 1
        assert await users.get_by_id(expired.id) is None
        assert await users.get_by_id(live.id) is not None
        assert ("old@example.com", "signup") not in otps.docs
        assert ("new@example.com", "signup") in otps.docs

    async def test_verified_accounts_are_never_touched(self, scheduler, users):
        await users.create(
            UserDoc(
                email="done@example.com",
                name="Done",
                is_email_verified=True,
                registration_expires=START - timedelta(days=1),
            )
        )
        summary = await scheduler.run_sweep()
        assert summary.total == 0
        assert len(users.docs) == 1

    async def test_expiry_boundary_is_inclusive(self, scheduler, users):
        await _unverified(users, "edge@example.com", 0)
        summary = await scheduler.run_sweep()
        assert summary.successful == 1

    async def test_lost_claim_is_reported_as_failed(self, scheduler, users, mocker):
        await _unverified(users, "old@example.com", -1)
        mocker.patch.object(users, "claim_for_deletion", return_value=False)

        summary = await scheduler.run_sweep()

        assert summary.failed == 1
        assert summary.outcomes[0].reason == "already_claimed"
        assert len(users.docs) == 1

    async def test_one_failure_does_not_stop_the_sweep(self, scheduler, users, mocker):
        first = await _unverified(users, "a@example.com", -2)
        second = await _unverified(users, "b@example.com", -1)
        real_delete = users.delete

        async def flaky_delete(user_id):
            if str(user_id) == str(first.id):
                raise RuntimeError("disk on fire")
            return await real_delete(user_id)

        mocker.patch.object(users, "delete", side_effect=flaky_delete)

        summary = await scheduler.run_sweep()

        assert summary.total == 2
        assert summary.errors == 1
        assert summary.successful == 1
        assert await users.get_by_id(second.id) is None
        error = next(o for o in summary.outcomes if o.status == "error")
        assert error.reason == "RuntimeError"

    async def test_errored_account_is_retried_next_sweep(self, scheduler, users, mocker):
        user = await _unverified(users, "old@example.com", -1)
        real_delete = users.delete
        mocker.patch.object(users, "delete", side_effect=RuntimeError("primary stepped down"))

        first = await scheduler.run_sweep()
        assert first.errors == 1
        assert (await users.get_by_id(user.id)).pending_deletion is False

        mocker.patch.object(users, "delete", side_effect=real_delete)
        second = await scheduler.run_sweep()

        assert second.total == 1
        assert second.successful == 1
        assert await users.get_by_id(user.id) is None

    async def test_failed_release_is_logged_not_raised(self, scheduler, users, mocker):
        await _unverified(users, "old@example.com", -1)
        mocker.patch.object(users, "delete", side_effect=RuntimeError("down"))
        mocker.patch.object(users, "release_deletion_claim", side_effect=RuntimeError("down"))

        summary = await scheduler.run_sweep()

        assert summary.errors == 1
        assert summary.outcomes[0].reason == "RuntimeError"

    async def test_clears_elapsed_lockouts(self, scheduler, users):
        await users.create(
            UserDoc(
                email="locked@example.com",
                name="Locked",
                is_email_verified=True,
                login_attempts=5,
                block_expires=START - timedelta(minutes=1),
            )
        )
        summary = await scheduler.run_sweep()
        assert summary.lockouts_cleared == 1
        stored = await users.get_by_email("locked@example.com")
        assert stored.login_attempts == 0

    async def test_summary_to_dict(self, scheduler):
        data = (await scheduler.run_sweep()).to_dict()
        assert data["started_at"] == START.isoformat()
        assert data["outcomes"] == []

    async def test_manual_cleanup_records_last_summary(self, scheduler, users):
        await _unverified(users, "old@example.com", -1)
        summary = await scheduler.manual_cleanup()
        assert scheduler.last_summary is summary
        assert summary.successful == 1


class TestLifecycle:
    async def test_start_sweeps_immediately(self, scheduler, users):
        await _unverified(users, "old@example.com", -1)
        await scheduler.start()
        for _ in range(3):
            await asyncio.sleep(0)

        assert scheduler.running is True
        assert scheduler.last_summary is not None
        assert users.docs == {}
        await scheduler.stop()
        assert scheduler.running is False

    async def test_start_and_stop_are_idempotent(self, scheduler):
        await scheduler.stop()
        await scheduler.start()
        await scheduler.start()
        assert scheduler.running is True
        await scheduler.stop()
        await scheduler.stop()
        assert scheduler.running is False


class TestStats:
    async def test_counts(self, scheduler, users):
        await _unverified(users, "old@example.com", -1)
        await _unverified(users, "new@example.com", 3)

        stats = await scheduler.get_stats()

        assert stats["total_unverified"] == 2
        assert stats["expired"] == 1
        assert stats["pending_expiry"] == 1
        assert stats["service_running"] is False
        assert stats["interval_seconds"] == 60
        assert stats["next_cleanup_in"] is None
        assert stats["last_run_at"] is None

    async def test_next_cleanup_while_running(self, scheduler):
        await scheduler.start()
        for _ in range(3):
            await asyncio.sleep(0)
        stats = await scheduler.get_stats()
        assert stats["service_running"] is True
        assert 0 <= stats["next_cleanup_in"] <= 60
        assert stats["last_run_at"] == START.isoformat()
        await scheduler.stop()
