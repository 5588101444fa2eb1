"""
Date handling for streaks

Streak days are UTC calendar days. Callers may pass their own ``today``;
datetimes are converted to their UTC date, naive datetimes are taken as UTC.
"""

from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

UTC = ZoneInfo("UTC")


def now_utc() -> datetime:
    """Current datetime in UTC (timezone-aware)"""
    return datetime.now(UTC)


def today_utc() -> date:
    """Current UTC calendar day"""
    return now_utc().date()


def as_utc_day(value: Optional[date]) -> date:
    """
    Normalize a caller-supplied day

    Args:
        value: A date, a datetime, or None for today

    Returns:
        UTC calendar date
    """
    if value is None:
        return today_utc()
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.date()
        return value.astimezone(UTC).date()
    return value
