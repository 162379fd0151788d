"""
Date/time helpers — framework-agnostic.

MongoDB stores datetimes as UTC milliseconds; depending on client options
they come back naive. Everything in the services compares timezone-aware
UTC values, so documents pass through ``ensure_utc`` on the way in.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return *value* as an aware UTC datetime (naive values are assumed UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def seconds_until(moment: datetime, now: datetime) -> int:
    """Whole seconds from *now* until *moment*, rounded up, never negative."""
    return max(0, math.ceil((moment - now).total_seconds()))


def minutes_until(moment: datetime, now: datetime) -> int:
    """Whole minutes from *now* until *moment*, rounded up, never negative."""
    return max(0, math.ceil((moment - now).total_seconds() / 60))
