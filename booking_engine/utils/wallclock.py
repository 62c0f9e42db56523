from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta
from typing import Callable
from zoneinfo import ZoneInfo

Clock = Callable[[], datetime]

_TWELVE_HOUR = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*([AaPp][Mm])\s*$")
_TWENTY_FOUR_HOUR = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def parse_hhmm(value: str) -> time:
    """Parse a 24-hour ``HH:MM`` string as used in working hours."""
    match = _TWENTY_FOUR_HOUR.match(value or "")
    if not match:
        raise ValueError(f"Expected HH:MM, got {value!r}")
    return time(hour=int(match.group(1)), minute=int(match.group(2)))


def parse_wall_time(value: str) -> time:
    """Parse a 12-hour wall clock string such as ``"9:00 AM"``."""
    match = _TWELVE_HOUR.match(value or "")
    if not match:
        raise ValueError(f"Expected a time like '9:00 AM', got {value!r}")
    hour, minute, meridiem = int(match.group(1)), int(match.group(2)), match.group(3).upper()
    if not 1 <= hour <= 12 or minute > 59:
        raise ValueError(f"Time out of range: {value!r}")
    hour = hour % 12
    if meridiem == "PM":
        hour += 12
    return time(hour=hour, minute=minute)


def format_wall_time(value: time | datetime) -> str:
    hour = value.hour % 12 or 12
    meridiem = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d} {meridiem}"


def normalize_wall_time(value: str) -> str:
    return format_wall_time(parse_wall_time(value))


def interval_on(day: date, start: time, duration_minutes: int) -> tuple[datetime, datetime]:
    begin = datetime.combine(day, start)
    return begin, begin + timedelta(minutes=duration_minutes)


def months_before(day: date, months: int) -> date:
    """Same day-of-month ``months`` earlier, clamped to the month's last day."""
    index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(index, 12)
    month += 1
    following = date(year + (month == 12), month % 12 + 1, 1)
    last_day = (following - timedelta(days=1)).day
    return date(year, month, min(day.day, last_day))


def site_clock(timezone_name: str) -> Clock:
    """Return a clock yielding naive wall-clock time in the site's timezone."""
    zone = ZoneInfo(timezone_name)

    def now() -> datetime:
        return datetime.now(tz=zone).replace(tzinfo=None)

    return now
