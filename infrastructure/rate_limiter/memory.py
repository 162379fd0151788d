"""
Process-local moving-window rate limiter on top of ``limits``.

Each key gets a moving window of ``points`` hits per ``duration_seconds``.
When a call would push the key past its budget the call fails and, if a
block duration is configured, the key is blocked outright for that long.
The block is a second ``limits`` item with a budget of one hit, so both the
window and the block expire inside ``MemoryStorage``.

State lives in this process only; running several workers multiplies the
effective budget.
"""

from __future__ import annotations

import threading
import time
from typing import Optional

from limits import RateLimitItem, RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from infrastructure.rate_limiter.protocol import RateLimitExceeded, RateLimitState


class InMemoryRateLimiter:
    def __init__(
        self,
        name: str,
        points: int,
        duration_seconds: int,
        block_seconds: int = 0,
        storage: Optional[MemoryStorage] = None,
    ) -> None:
        if points < 1:
            raise ValueError("points must be >= 1")
        if duration_seconds <= 0:
            raise ValueError("duration_seconds must be > 0")
        self.name = name
        self.points = points
        self.duration_seconds = duration_seconds
        self.block_seconds = block_seconds
        self.storage = storage or MemoryStorage()
        self._strategy = MovingWindowRateLimiter(self.storage)
        self._window = RateLimitItemPerSecond(
            points, int(duration_seconds), namespace="WINDOW"
        )
        self._block: Optional[RateLimitItem] = (
            RateLimitItemPerSecond(1, int(block_seconds), namespace="BLOCK")
            if block_seconds > 0
            else None
        )
        # check-block / hit / start-block must not interleave across threads
        self._lock = threading.Lock()

    async def consume(self, key: str, points: int = 1) -> RateLimitState:
        now = time.time()

        with self._lock:
            if self._block is not None and not self._strategy.test(
                self._block, self.name, key
            ):
                raise RateLimitExceeded(
                    self._ms_until_reset(self._block, key, now), limit=self.points
                )

            if not self._strategy.hit(self._window, self.name, key, cost=points):
                if self._block is not None:
                    # the block replaces the window; a fresh window starts after it
                    self._strategy.clear(self._window, self.name, key)
                    self._strategy.hit(self._block, self.name, key)
                    wait_ms = _to_ms(self.block_seconds)
                else:
                    wait_ms = self._ms_until_reset(self._window, key, now)
                raise RateLimitExceeded(wait_ms, limit=self.points)

            stats = self._strategy.get_window_stats(self._window, self.name, key)

        remaining = stats.remaining
        next_ms = _to_ms(stats.reset_time - now) if remaining == 0 else 0
        return RateLimitState(
            limit=self.points, remaining=remaining, ms_before_next=next_ms
        )

    def reset(self, key: str) -> None:
        with self._lock:
            self._strategy.clear(self._window, self.name, key)
            if self._block is not None:
                self._strategy.clear(self._block, self.name, key)

    def _ms_until_reset(self, item: RateLimitItem, key: str, now: float) -> int:
        stats = self._strategy.get_window_stats(item, self.name, key)
        return _to_ms(stats.reset_time - now)


def _to_ms(seconds: float) -> int:
    return max(0, int(seconds * 1000))
