"""
Reporting-period utilities for the global aggregation.

Periods are calendar months in UTC, keyed as 'YYYY-MM'.
"""

import calendar
import re
from datetime import datetime, timezone
from typing import Optional, Tuple

PERIOD_KEY_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def get_period_key(now: Optional[datetime] = None) -> str:
    """
    Get the reporting period key for a moment in time.

    Examples:
        >>> get_period_key(datetime(2026, 3, 31, 23, 59, tzinfo=timezone.utc))
        '2026-03'
    """
    now = ensure_utc(now or utcnow())
    return f"{now.year:04d}-{now.month:02d}"


def get_month_bounds(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """
    Get the UTC start and end of the month containing `now`.

    The start is the first instant of the month; the end is the last
    representable instant (23:59:59.999999 on the final day).
    """
    now = ensure_utc(now or utcnow())
    last_day = calendar.monthrange(now.year, now.month)[1]
    start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    end = datetime(now.year, now.month, last_day, 23, 59, 59, 999999, tzinfo=timezone.utc)
    return start, end


def parse_period_key(period: str) -> datetime:
    """
    Parse a 'YYYY-MM' period key into the first instant of that month (UTC).

    Raises:
        ValueError: If the key is malformed or the month is out of range
    """
    match = PERIOD_KEY_PATTERN.match(period or "")
    if not match:
        raise ValueError(f"Invalid period key {period!r}, expected YYYY-MM")

    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month in period key {period!r}")

    return datetime(year, month, 1, tzinfo=timezone.utc)
