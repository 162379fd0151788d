"""
Named rate limiters used by the auth flows.

Each limiter guards a different abuse vector and owns its own key namespace:

- endpoint          per client IP on register / login / verify / resend routes
- otp_issue         per email (or email:type) for sending OTP emails
- forgot_password   per email for password-reset requests
- otp_verification  per purpose-qualified email for OTP guessing
"""

from __future__ import annotations

from dataclasses import dataclass

from config import RateLimitSettings
from infrastructure.rate_limiter.bypass import BypassRateLimiter
from infrastructure.rate_limiter.memory import InMemoryRateLimiter
from infrastructure.rate_limiter.protocol import RateLimiter
from shared.logging import get_logger

log = get_logger(__name__)

LIMITER_NAMES = ("endpoint", "otp_issue", "forgot_password", "otp_verification")


@dataclass
class RateLimiters:
    endpoint: RateLimiter
    otp_issue: RateLimiter
    forgot_password: RateLimiter
    otp_verification: RateLimiter


def build_rate_limiters(
    settings: RateLimitSettings,
    bypass: bool = False,
) -> RateLimiters:
    """Build the four named limiters from *settings*.

    When *bypass* is set every limiter is a BypassRateLimiter. Callers are
    expected to pass ``AppSettings.rate_limit_bypassed``, which is never
    true in production.
    """
    limiters = {}
    for name in LIMITER_NAMES:
        points = getattr(settings, f"{name}_points")
        if bypass:
            limiters[name] = BypassRateLimiter(name, points)
            continue
        limiters[name] = InMemoryRateLimiter(
            name,
            points=points,
            duration_seconds=getattr(settings, f"{name}_duration_seconds"),
            block_seconds=getattr(settings, f"{name}_block_seconds"),
        )

    if bypass:
        log.warning("rate_limiting_bypassed", limiters=list(LIMITER_NAMES))
    else:
        log.info(
            "rate_limiters_configured",
            budgets={
                name: {
                    "points": getattr(settings, f"{name}_points"),
                    "window_seconds": getattr(settings, f"{name}_duration_seconds"),
                    "block_seconds": getattr(settings, f"{name}_block_seconds"),
                }
                for name in LIMITER_NAMES
            },
        )
    return RateLimiters(**limiters)
