"""
Standardized Date/Time Handling Utilities

CRITICAL RULES:
- Always store datetimes as timezone-aware values (UTC in the database)
- Streak days are LOCAL calendar days in the user's timezone
- Never compare naive and aware datetimes
- Day arithmetic goes through date/timedelta, never string slicing
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from streak_engine.config import DEFAULT_TIMEZONE, FORGIVENESS_WINDOW_END_HOUR
from streak_engine.exceptions import UnrecognizedTimezoneError

logger = logging.getLogger(__name__)


def now_utc() -> datetime:
    """Current datetime in UTC (timezone-aware)"""
    return datetime.now(timezone.utc)


def load_timezone(timezone_name: Optional[str]) -> ZoneInfo:
    """
    Load an IANA timezone

    Raises:
        UnrecognizedTimezoneError: If the name is empty or not a known zone
    """
    if not timezone_name or not timezone_name.strip():
        raise UnrecognizedTimezoneError(timezone_name, operation="load_timezone")
    try:
        return ZoneInfo(timezone_name.strip())
    except (ZoneInfoNotFoundError, ValueError, OSError) as e:
        raise UnrecognizedTimezoneError(timezone_name, operation="load_timezone", cause=e)


def resolve_timezone(
    timezone_name: Optional[str],
    default_timezone: str = DEFAULT_TIMEZONE
) -> ZoneInfo:
    """
    Resolve a user's timezone, falling back to the default zone

    Never fails for user input: an unrecognized zone degrades to the default.
    """
    try:
        return load_timezone(timezone_name)
    except UnrecognizedTimezoneError:
        logger.warning(f"Falling back to default timezone {default_timezone} (got {timezone_name!r})")
        return ZoneInfo(default_timezone)


def to_local(dt: datetime, tz: ZoneInfo) -> datetime:
    """Convert a datetime into the user's zone (naive values are assumed UTC)"""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
        logger.warning(f"Received naive datetime, assuming UTC: {dt}")
    return dt.astimezone(tz)


def local_date(dt: datetime, tz: ZoneInfo) -> date:
    """Local calendar day of a datetime in the user's zone"""
    return to_local(dt, tz).date()


def previous_local_day(day: date) -> date:
    return day - timedelta(days=1)


def is_in_forgiveness_window(
    now_local: datetime,
    end_hour: int = FORGIVENESS_WINDOW_END_HOUR
) -> bool:
    """Late-night window (00:00 up to end_hour local) that can count for yesterday"""
    return 0 <= now_local.hour < end_hour


def shift_local_days(now_local: datetime, days: int) -> datetime:
    """
    Move a local datetime by whole calendar days, keeping the wall-clock time

    Arithmetic happens on the naive wall time, so month/year boundaries and
    DST transitions land on the right calendar day.
    """
    tz = now_local.tzinfo
    naive = now_local.replace(tzinfo=None) + timedelta(days=days)
    return naive.replace(tzinfo=tz)
