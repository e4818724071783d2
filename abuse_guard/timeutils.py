"""Calendar-day arithmetic and remaining-time formatting."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Union

import pytz

UTC = pytz.utc

Tz = Union[str, pytz.BaseTzInfo]

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS


def utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


def get_timezone(tz: Tz) -> pytz.BaseTzInfo:
    if isinstance(tz, str):
        return pytz.timezone(tz)
    return tz


def ensure_aware(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC (that is how pymongo hands them back)."""
    if dt.tzinfo is None:
        return UTC.localize(dt)
    return dt


def start_of_day(now: datetime, tz: Tz = UTC) -> datetime:
    """Midnight of ``now``'s calendar day in ``tz``, returned in UTC."""
    zone = get_timezone(tz)
    local = ensure_aware(now).astimezone(zone)
    midnight = zone.localize(datetime(local.year, local.month, local.day))
    return midnight.astimezone(UTC)


def next_day_start(now: datetime, tz: Tz = UTC) -> datetime:
    """Midnight of the calendar day after ``now`` in ``tz``, returned in UTC."""
    zone = get_timezone(tz)
    local = ensure_aware(now).astimezone(zone)
    tomorrow = local.date() + timedelta(days=1)
    midnight = zone.localize(datetime(tomorrow.year, tomorrow.month, tomorrow.day))
    return midnight.astimezone(UTC)


def millis_between(start: datetime, end: datetime) -> int:
    """Whole milliseconds from ``start`` to ``end`` (negative if end is earlier)."""
    delta = ensure_aware(end) - ensure_aware(start)
    return delta // timedelta(milliseconds=1)


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'s' if count != 1 else ''}"


def format_remaining_time(ms: int) -> str:
    """Render a duration as ``"X hours and Y minutes"`` or ``"Y minutes"``.

    Sub-minute precision is dropped, so 90 seconds reads as ``"1 minute"``.

    >>> format_remaining_time(90 * 60000)
    '1 hour and 30 minutes'
    >>> format_remaining_time(5 * 60000)
    '5 minutes'
    """
    ms = max(0, int(ms))
    hours = ms // HOUR_MS
    minutes = (ms % HOUR_MS) // MINUTE_MS

    if hours > 0:
        return f"{_plural(hours, 'hour')} and {_plural(minutes, 'minute')}"
    return _plural(minutes, "minute")
