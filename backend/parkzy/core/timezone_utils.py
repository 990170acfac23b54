"""
Timezone utilities for the Parkzy platform.

Booking instants are stored in UTC. Availability rules and calendar
overrides are expressed in the spot's local wall-clock time, so every
availability decision goes through these helpers.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union

import pytz

from .constants import MINUTES_PER_DAY

TzLike = Union[str, pytz.BaseTzInfo, None]


def utc_now() -> datetime:
    """Current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.

    Naive values are assumed to already be UTC (SQLite returns naive
    datetimes even for timezone-aware columns).
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def get_timezone(tz: TzLike) -> pytz.BaseTzInfo:
    """Resolve a timezone name (or None for UTC) to a pytz timezone."""
    if tz is None:
        return pytz.UTC
    if isinstance(tz, str):
        return pytz.timezone(tz)
    return tz


def to_local(dt: datetime, tz: TzLike) -> datetime:
    """Convert an instant to the given timezone's wall-clock time."""
    return ensure_utc(dt).astimezone(get_timezone(tz))


def local_day_bounds(day: date, tz: TzLike) -> tuple[datetime, datetime]:
    """
    Return the UTC instants at which the local ``day`` starts and ends.

    The end is the start of the following local day (half-open).
    """
    zone = get_timezone(tz)
    start_local = zone.localize(datetime.combine(day, time.min))
    end_local = zone.localize(datetime.combine(day + timedelta(days=1), time.min))
    return start_local.astimezone(timezone.utc), end_local.astimezone(timezone.utc)


def time_to_minutes(value: Optional[time], *, is_end: bool = False) -> int:
    """
    Minutes since midnight for a wall-clock time.

    End bounds of 23:59 or later count as end of day.
    """
    if value is None:
        return MINUTES_PER_DAY if is_end else 0
    minutes = value.hour * 60 + value.minute
    if is_end and minutes >= MINUTES_PER_DAY - 1:
        return MINUTES_PER_DAY
    return minutes


def minutes_to_time(value: int) -> time:
    """Inverse of ``time_to_minutes``; end of day maps to 23:59."""
    if value >= MINUTES_PER_DAY:
        return time(23, 59)
    return time(value // 60, value % 60)
