"""Trading session windows (UTC, inclusive at both ends)."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from ..config.defaults import SessionParams
from ..models.analysis import InstrumentProfile, InstrumentType
from ..utils.time import ensure_utc, minutes_of_day


class Session(str, Enum):
    LONDON_OPEN = "london-open"
    NY_KILL_ZONE = "ny-kill-zone"
    ASIAN_RANGE = "asian-range"
    OUTSIDE = "outside-session"


def _in_window(minutes: int, start: int, end: int) -> bool:
    return start <= minutes <= end


def in_kill_zone(now: datetime, params: Optional[SessionParams] = None) -> bool:
    """True inside London open or the New York kill zone."""
    params = params or SessionParams()
    minutes = minutes_of_day(now)
    return (_in_window(minutes, params.london_open_start, params.london_open_end)
            or _in_window(minutes, params.ny_kill_zone_start, params.ny_kill_zone_end))


def is_valid_session(
    now: datetime,
    profile: InstrumentProfile,
    params: Optional[SessionParams] = None,
) -> bool:
    """Synthetic instruments trade around the clock; everything else needs a kill zone."""
    if profile.type == InstrumentType.SYNTHETIC:
        return True
    return in_kill_zone(now, params)


def current_session(now: datetime, params: Optional[SessionParams] = None) -> Session:
    params = params or SessionParams()
    minutes = minutes_of_day(now)

    if _in_window(minutes, params.london_open_start, params.london_open_end):
        return Session.LONDON_OPEN
    if _in_window(minutes, params.ny_kill_zone_start, params.ny_kill_zone_end):
        return Session.NY_KILL_ZONE
    if minutes < params.london_open_start:
        return Session.ASIAN_RANGE
    return Session.OUTSIDE


def next_session_start(now: datetime, params: Optional[SessionParams] = None) -> datetime:
    """Start of the next London open or New York kill zone."""
    params = params or SessionParams()
    now = ensure_utc(now)
    minutes = minutes_of_day(now)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if minutes < params.london_open_start:
        return midnight + timedelta(minutes=params.london_open_start)
    if minutes < params.ny_kill_zone_start:
        return midnight + timedelta(minutes=params.ny_kill_zone_start)
    return midnight + timedelta(days=1, minutes=params.london_open_start)
