"""Club-local date/time helpers.

Domain timestamps are stored as naive datetimes in the club's time zone.
"""

import re
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

_HHMM = re.compile(r"^(\d{2}):(\d{2})$")

MINUTES_PER_DAY = 24 * 60


def local_now(tz_name: str) -> datetime:
    """Current wall-clock time in the club time zone, without tzinfo."""
    return datetime.now(ZoneInfo(tz_name)).replace(tzinfo=None, microsecond=0)


def parse_iso(value: str, tz_name: str) -> datetime:
    # Expect ISO format like "2026-01-20T18:00:00"; an explicit offset
    # (or trailing Z) is converted to club local time.
    if not isinstance(value, str) or not value.strip():
        raise ValueError("datetime required")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is not None:
        dt = dt.astimezone(ZoneInfo(tz_name)).replace(tzinfo=None)
    return dt


def parse_day(value: str) -> date:
    if not isinstance(value, str) or not value.strip():
        raise ValueError("date required")
    return date.fromisoformat(value.strip()[:10])


def parse_hhmm(value: str) -> int:
    """"09:30" -> 570 minutes after midnight. "24:00" is accepted as end of day."""
    if not isinstance(value, str):
        raise ValueError(f"Invalid time '{value}'. Use HH:MM")
    m = _HHMM.match(value.strip())
    if not m:
        raise ValueError(f"Invalid time '{value}'. Use HH:MM")
    hours, minutes = int(m.group(1)), int(m.group(2))
    total = hours * 60 + minutes
    if minutes > 59 or total > MINUTES_PER_DAY:
        raise ValueError(f"Invalid time '{value}'. Use HH:MM")
    return total


def format_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def weekday_number(day) -> int:
    """0 = Sunday ... 6 = Saturday (the numbering used by rate rules and patterns)."""
    return (day.weekday() + 1) % 7


def day_start(day) -> datetime:
    return datetime(day.year, day.month, day.day)


def at_minute(day, minutes: int) -> datetime:
    return day_start(day) + timedelta(minutes=minutes)


def minute_of_day(dt: datetime) -> int:
    return dt.hour * 60 + dt.minute


def same_operating_day(start: datetime, end: datetime) -> bool:
    """True when [start, end) stays on start's calendar day (ending exactly at midnight is allowed)."""
    return end <= day_start(start.date()) + timedelta(days=1)
