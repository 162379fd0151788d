"""No-op limiter selected when rate limiting is bypassed outside production."""

from __future__ import annotations

from infrastructure.rate_limiter.protocol import RateLimitState


class BypassRateLimiter:
    def __init__(self, name: str, points: int = 0) -> None:
        self.name = name
        self.points = points

    async def consume(self, key: str, points: int = 1) -> RateLimitState:
        return RateLimitState(limit=self.points, remaining=self.points)

    def reset(self, key: str) -> None:
        return None
