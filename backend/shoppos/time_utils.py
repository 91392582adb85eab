from __future__ import annotations

from datetime import datetime, time, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    if dt.tzinfo is None:
        return dt.replace(tzinfo=None)

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_range_bound(value: Optional[str], *, end: bool = False) -> Optional[datetime]:
    """
    Parse a from/to query bound.

    A bare date ("2024-03-31") used as an upper bound covers the whole day.
    Raises ValueError on malformed input.
    """
    dt = parse_iso_datetime(value)
    if dt is None:
        return None
    if end and len(value.strip()) == 10:
        return datetime.combine(dt.date(), time.max)
    return dt


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def get_timezone(name: str | None) -> tzinfo:
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def to_local(dt: datetime, tz: tzinfo) -> datetime:
    """Convert a UTC-naive datetime to naive wall-clock time in tz."""
    return dt.replace(tzinfo=timezone.utc).astimezone(tz).replace(tzinfo=None)


def local_to_utc(dt: datetime, tz: tzinfo) -> datetime:
    """Convert naive wall-clock time in tz to UTC-naive."""
    return dt.replace(tzinfo=tz).astimezone(timezone.utc).replace(tzinfo=None)
