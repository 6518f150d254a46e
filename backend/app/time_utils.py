from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from flask import current_app, has_app_context


MINUTES_PER_DAY = 24 * 60


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def business_tz_name() -> str:
    if has_app_context():
        return current_app.config.get("BUSINESS_TIMEZONE", "UTC")
    return "UTC"


def to_business_time(dt_utc: datetime, tz_name: Optional[str] = None) -> datetime:
    """
    Convert a UTC-naive timestamp into naive wall-clock time of the business zone.

    Booking dates and HH:MM start times are entered as local wall-clock values,
    so every "is this in the future" comparison happens in that frame.
    """
    tz = ZoneInfo(tz_name or business_tz_name())
    aware = dt_utc.replace(tzinfo=timezone.utc).astimezone(tz)
    return aware.replace(tzinfo=None)


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

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """Parse "YYYY-MM-DD" (a longer ISO timestamp is truncated to its date)."""
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None
    return date.fromisoformat(s[:10])


def parse_hhmm(value: str, *, allow_end_of_day: bool = False) -> int:
    """
    Parse "HH:MM" into minutes since midnight.

    "24:00" is only meaningful as the end of a window and is rejected unless
    allow_end_of_day is set.
    """
    s = (value or "").strip()
    parts = s.split(":")
    if len(parts) != 2 or len(parts[0]) != 2 or len(parts[1]) != 2:
        raise ValueError(f"'{value}' is not in HH:MM format")
    if not (parts[0].isdigit() and parts[1].isdigit()):
        raise ValueError(f"'{value}' is not in HH:MM format")

    hours, minutes = int(parts[0]), int(parts[1])
    if hours == 24 and minutes == 0 and allow_end_of_day:
        return MINUTES_PER_DAY
    if hours > 23 or minutes > 59:
        raise ValueError(f"'{value}' is not a valid time of day")
    return hours * 60 + minutes


def format_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def combine_local(day: date, minutes: int) -> datetime:
    """Naive local datetime for a calendar date plus minutes since midnight."""
    return datetime(day.year, day.month, day.day) + timedelta(minutes=minutes)


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
