"""
Calendar helpers over ISO date strings (YYYY-MM-DD) in the user's local timezone.
All arithmetic is done on a midday-anchored datetime so DST transitions never move the calendar date.
"""
from __future__ import annotations

import calendar
import re
from datetime import date, datetime, time, timedelta, tzinfo

from zoneinfo import ZoneInfo

# Already ISO date
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_MIDDAY = time(12, 0)


def local_tz(tz_name: str = "") -> tzinfo:
    """IANA zone when configured, otherwise the machine's local zone."""
    name = (tz_name or "").strip()
    if name:
        return ZoneInfo(name)
    return datetime.now().astimezone().tzinfo


def localize(naive: datetime, tz_name: str = "") -> datetime:
    """Attach the user's zone to a naive local datetime, using the offset in force on that date."""
    name = (tz_name or "").strip()
    if name:
        return naive.replace(tzinfo=ZoneInfo(name))
    # System zone: astimezone() on a naive value applies that date's DST rules.
    return naive.astimezone()


def _today_in_tz(tz_name: str = "") -> date:
    return datetime.now(local_tz(tz_name)).date()


def is_iso_date(value: str | None) -> bool:
    """True if value is a real calendar date in YYYY-MM-DD form."""
    if not value or not isinstance(value, str) or not _ISO_DATE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def parse_iso_date(value: str) -> date:
    """Parse YYYY-MM-DD; raise ValueError for anything else (including 2024-02-30)."""
    if not isinstance(value, str) or not _ISO_DATE.match(value):
        raise ValueError(f"Not an ISO date (YYYY-MM-DD): {value!r}")
    return date.fromisoformat(value)


def _at_midday(value: str) -> datetime:
    return datetime.combine(parse_iso_date(value), _MIDDAY)


def today(tz_name: str = "") -> str:
    """Today's local date as YYYY-MM-DD (never the UTC date)."""
    return _today_in_tz(tz_name).isoformat()


def add_days(value: str, n: int) -> str:
    """value + n days; n may be negative. Rolls across month and year boundaries."""
    return (_at_midday(value) + timedelta(days=n)).date().isoformat()


def add_months(value: str, n: int) -> str:
    """Same day-of-month n months later, clamped to the last day of the target month."""
    dt = _at_midday(value)
    month_index = dt.year * 12 + (dt.month - 1) + n
    year, month = divmod(month_index, 12)
    month += 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day).date().isoformat()


def compare_dates(a: str, b: str) -> int:
    """-1, 0 or 1. Plain string comparison is exact for the fixed YYYY-MM-DD format."""
    if a < b:
        return -1
    if a > b:
        return 1
    return 0


def days_between(a: str, b: str) -> int:
    """Whole days from a to b (negative when b is earlier)."""
    return round((_at_midday(b) - _at_midday(a)) / timedelta(days=1))


def resolve_relative_date(value: str | None, tz_name: str = "", current: str | None = None) -> str | None:
    """
    Convert a date string to YYYY-MM-DD. Respects user timezone for relative phrases.
    - If value is already YYYY-MM-DD, return it.
    - If value is 'today', 'tomorrow', 'yesterday', 'next week', 'in N days' or a weekday name, return the resolved date.
    - Otherwise return None (caller decides how to report it).
    current overrides "today" (the service clock).
    """
    if not value or not str(value).strip():
        return None
    raw = str(value).strip().lower()
    raw = re.sub(r"^due\s+", "", raw).strip()
    if _ISO_DATE.match(raw):
        return raw if is_iso_date(raw) else None
    current = current or today(tz_name)
    if raw == "today":
        return current
    if raw == "tomorrow":
        return add_days(current, 1)
    if raw == "yesterday":
        return add_days(current, -1)
    if raw in ("next week", "in a week"):
        return add_days(current, 7)
    m = re.match(r"^in\s+(\d+)\s+days?$", raw)
    if m:
        return add_days(current, int(m.group(1)))
    # Day names: next occurrence of that weekday, never today
    weekdays = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
    if raw in weekdays:
        days_ahead = (weekdays.index(raw) - parse_iso_date(current).weekday()) % 7
        return add_days(current, days_ahead or 7)
    return None


def format_date_friendly(iso_date: str | None, tz_name: str = "", current: str | None = None) -> str:
    """
    Format an ISO date (YYYY-MM-DD) for display: "today", "yesterday", "tomorrow", or "m/d".
    """
    if not is_iso_date(iso_date):
        return str(iso_date or "")
    current = current or today(tz_name)
    if iso_date == current:
        return "today"
    if iso_date == add_days(current, 1):
        return "tomorrow"
    if iso_date == add_days(current, -1):
        return "yesterday"
    _, m, d = iso_date.split("-")
    return f"{int(m)}/{int(d)}"
