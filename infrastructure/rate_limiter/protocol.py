"""RateLimiter protocol — services depend on this, not the concrete implementation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class RateLimitState:
    """Outcome of a successful ``consume`` call."""

    limit: int
    remaining: int
    ms_before_next: int = 0


class RateLimitExceeded(Exception):
    """Raised by ``consume`` when the key has no points left.

    ``ms_before_next`` is how long the caller has to wait before the next
    point becomes available (or the block period ends).
    """

    def __init__(self, ms_before_next: int, limit: int = 0) -> None:
        self.ms_before_next = ms_before_next
        self.limit = limit
        super().__init__(f"rate limit exceeded, retry in {ms_before_next} ms")

    @property
    def retry_after_seconds(self) -> int:
        return max(1, -(-self.ms_before_next // 1000))


class RateLimiter(Protocol):
    name: str

    async def consume(self, key: str, points: int = 1) -> RateLimitState: ...

    def reset(self, key: str) -> None: ...
