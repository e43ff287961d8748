"""Google Calendar "add event" link for a task: one slot on the task's due date, 30 minutes by default."""
from __future__ import annotations

import re
import urllib.parse
from datetime import datetime, timedelta, timezone

from date_utils import localize, parse_iso_date

_GOOGLE_RENDER_URL = "https://calendar.google.com/calendar/render"
_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def _utc_basic(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def google_calendar_url(
    text: str,
    date: str,
    *,
    time: str = "09:00",
    duration_minutes: int = 30,
    tz_name: str = "",
) -> str:
    """Build the render?action=TEMPLATE URL. date is YYYY-MM-DD, time is local HH:MM."""
    m = _HHMM.match(time or "")
    if not m:
        raise ValueError(f"time must be HH:MM, got {time!r}")
    if duration_minutes <= 0:
        raise ValueError("duration_minutes must be positive")
    day = parse_iso_date(date)
    start = localize(datetime(day.year, day.month, day.day, int(m.group(1)), int(m.group(2))), tz_name)
    end = start + timedelta(minutes=duration_minutes)
    query = urllib.parse.urlencode(
        {"action": "TEMPLATE", "text": text, "dates": f"{_utc_basic(start)}/{_utc_basic(end)}"},
        safe="/",
        quote_via=urllib.parse.quote,
    )
    return f"{_GOOGLE_RENDER_URL}?{query}"
