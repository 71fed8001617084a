"""
Shared datetime helpers.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union

_DURATION = re.compile(r"^\s*(\d+)\s*([smhdw]?)\s*$", re.IGNORECASE)
_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400, "w": 604800}


def ensure_utc(dt: datetime) -> datetime:
    """Return a timezone-aware UTC datetime."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Union[str, date, datetime]) -> datetime:
    """Parse an ISO 8601 timestamp and normalize it to UTC.

    Raises:
        ValueError: If the value is not a timestamp
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"invalid timestamp {value!r}")
    return ensure_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))


def parse_expiry(value: Union[str, date, datetime]) -> datetime:
    """Parse an expiry. A bare date stays valid through the end of that day (UTC)."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime.combine(value + timedelta(days=1), time.min, tzinfo=timezone.utc)
    if isinstance(value, str) and re.fullmatch(r"\s*\d{4}-\d{2}-\d{2}\s*", value):
        return parse_expiry(date.fromisoformat(value.strip()))
    return parse_timestamp(value)


def parse_duration(value: str) -> timedelta:
    """Parse ``90``, ``30s``, ``15m``, ``24h``, ``7d`` or ``2w``.

    Raises:
        ValueError: For anything else
    """
    match = _DURATION.match(value or "")
    if not match:
        raise ValueError(f"invalid duration {value!r} (expected e.g. 3600, 30m, 24h, 7d)")
    amount, unit = match.groups()
    return timedelta(seconds=int(amount) * _UNITS[unit.lower()])


def format_duration(delta: Optional[timedelta]) -> str:
    if delta is None:
        return "unknown"
    seconds = int(delta.total_seconds())
    for unit, size in (("d", 86400), ("h", 3600), ("m", 60)):
        if seconds >= size:
            return f"{seconds // size}{unit}"
    return f"{seconds}s"
