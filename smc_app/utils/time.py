"""
Time helpers for candle epochs and lifecycle timestamps.

Candles carry integer epoch seconds. Everything the lifecycle and cooldown
code stores is a UTC datetime, and every function that depends on "now"
accepts it explicitly so callers and tests can pin the clock.
"""

import math
from datetime import datetime, timezone
from typing import Optional


def now_utc(now: Optional[datetime] = None) -> datetime:
    """
    Return the supplied time, or the wall-clock time in UTC.

    Args:
        now: Optional injected time

    Returns:
        Timezone-aware UTC datetime
    """
    if now is not None:
        return ensure_utc(now)

    return datetime.now(timezone.utc)


def ensure_utc(ts: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def epoch_to_datetime(epoch: int) -> datetime:
    """Convert integer epoch seconds to a UTC datetime."""
    return datetime.fromtimestamp(epoch, tz=timezone.utc)


def datetime_to_epoch(ts: datetime) -> int:
    """Convert a datetime to integer epoch seconds."""
    return int(ensure_utc(ts).timestamp())


def coerce_epoch_seconds(value: float) -> int:
    """
    Normalize a numeric timestamp to epoch seconds.

    Millisecond timestamps (anything past year 2286 when read as seconds)
    are scaled down.
    """
    if value > 1e11:
        return int(value // 1000)
    return int(value)


def minutes_remaining(ends_at: datetime, now: datetime) -> int:
    """Whole minutes until ends_at, rounded up, never negative."""
    seconds = (ensure_utc(ends_at) - ensure_utc(now)).total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / 60)


def minutes_of_day(ts: datetime) -> int:
    """Minutes elapsed since 00:00 UTC."""
    ts = ensure_utc(ts)
    return ts.hour * 60 + ts.minute
