"""
Core Module - Period Math.

============================================================
RESPONSIBILITY
============================================================
Maps a Unix timestamp (seconds, UTC) to the start of its enclosing
day, week, month, year or decade, and computes the relative
difference between two period totals.

- Weeks start on Sunday
- Decades start on the year divisible by ten
- All results are Unix timestamps in seconds

============================================================
DESIGN PRINCIPLES
============================================================
- Pure functions, no clock access
- UTC only
- Diff rule is asymmetric: growth from nothing is reported as 1

============================================================
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Tuple


SECONDS_PER_DAY = 24 * 60 * 60
SECONDS_PER_WEEK = 7 * SECONDS_PER_DAY

DATE_FORMAT = "%Y-%m-%d"


# ============================================================
# INTERNAL HELPERS
# ============================================================

def _to_datetime(timestamp: int) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def _to_timestamp(dt: datetime) -> int:
    return int(dt.timestamp())


def _midnight(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


# ============================================================
# PERIOD START FUNCTIONS
# ============================================================

def abs_day(timestamp: int) -> int:
    """Midnight of the same calendar day."""
    return _to_timestamp(_midnight(_to_datetime(timestamp)))


def abs_week(timestamp: int) -> int:
    """Midnight of the preceding (or same) Sunday."""
    day = _midnight(_to_datetime(timestamp))
    # datetime.weekday() is Monday=0, so Sunday is 6
    days_since_sunday = (day.weekday() + 1) % 7
    return _to_timestamp(day - timedelta(days=days_since_sunday))


def abs_month(timestamp: int) -> int:
    """Midnight of the 1st of the same month."""
    return _to_timestamp(_midnight(_to_datetime(timestamp)).replace(day=1))


def abs_year(timestamp: int) -> int:
    """Midnight of Jan 1 of the same year."""
    return _to_timestamp(_midnight(_to_datetime(timestamp)).replace(month=1, day=1))


def abs_decade(timestamp: int) -> int:
    """Midnight of Jan 1 of the decade-floor year."""
    dt = _to_datetime(timestamp)
    year = dt.year - dt.year % 10
    return _to_timestamp(datetime(year, 1, 1, tzinfo=timezone.utc))


PERIOD_FUNCTIONS: Dict[str, Callable[[int], int]] = {
    "day": abs_day,
    "week": abs_week,
    "month": abs_month,
    "year": abs_year,
    "decade": abs_decade,
}


def abs_period(period: str, timestamp: int) -> int:
    """
    Start of the period enclosing the timestamp.

    Unknown period names return the timestamp unchanged.

    Args:
        period: One of "week", "month", "year", "decade"
        timestamp: Unix seconds

    Returns:
        Period start in Unix seconds
    """
    if period not in ("week", "month", "year", "decade"):
        return timestamp
    return PERIOD_FUNCTIONS[period](timestamp)


def next_period_start(period: str, timestamp: int) -> int:
    """Start of the period following the one enclosing the timestamp."""
    start = _to_datetime(PERIOD_FUNCTIONS[period](timestamp))

    if period == "day":
        nxt = start + timedelta(days=1)
    elif period == "week":
        nxt = start + timedelta(days=7)
    elif period == "month":
        if start.month == 12:
            nxt = start.replace(year=start.year + 1, month=1)
        else:
            nxt = start.replace(month=start.month + 1)
    elif period == "year":
        nxt = start.replace(year=start.year + 1)
    elif period == "decade":
        nxt = start.replace(year=start.year + 10)
    else:
        raise ValueError(f"Unknown period: {period}")

    return _to_timestamp(nxt)


def period_span(period: str, timestamp: int) -> Tuple[int, int]:
    """
    Bounds of the period enclosing the timestamp.

    Returns:
        (start, end) where end is exclusive
    """
    return PERIOD_FUNCTIONS[period](timestamp), next_period_start(period, timestamp)


def previous_period_start(period: str, period_start: int) -> int:
    """Start of the period immediately before the given period start."""
    return PERIOD_FUNCTIONS[period](period_start - 1)


# ============================================================
# DIFF & FORMATTING
# ============================================================

def get_diff(current: float, previous: float) -> float:
    """
    Relative difference of a period total against the previous one.

    Returns:
        (current - previous) / previous when previous is non-zero,
        0 when both are zero, 1 when only previous is zero
    """
    if previous != 0:
        return (current - previous) / previous
    if current == 0:
        return 0.0
    return 1.0


def timestamp_to_date_string(timestamp: int) -> str:
    """Format a timestamp as YYYY-MM-DD (UTC)."""
    return _to_datetime(timestamp).strftime(DATE_FORMAT)


def timestamp_to_weekday(timestamp: int) -> int:
    """Weekday of a timestamp, Monday=0."""
    return _to_datetime(timestamp).weekday()


__all__ = [
    "SECONDS_PER_DAY",
    "SECONDS_PER_WEEK",
    "abs_day",
    "abs_week",
    "abs_month",
    "abs_year",
    "abs_decade",
    "abs_period",
    "next_period_start",
    "period_span",
    "previous_period_start",
    "get_diff",
    "timestamp_to_date_string",
    "timestamp_to_weekday",
]
