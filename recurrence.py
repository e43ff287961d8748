"""
Recurrence engine: which calendar dates a task is due on, and where its anchor moves after completion.
Pure functions over (anchor, repeat, candidate); dates are YYYY-MM-DD strings.
"""
from __future__ import annotations

from date_utils import add_days, add_months, days_between, parse_iso_date
from errors import ValidationError

NONE, DAILY, WEEKLY, MONTHLY = "none", "daily", "weekly", "monthly"
REPEATS = frozenset({NONE, DAILY, WEEKLY, MONTHLY})


def validate_repeat(value: str | None) -> str:
    """Normalize a repeat rule; empty means none. Raise ValidationError for unknown rules."""
    rule = (value or NONE).strip().lower()
    if rule not in REPEATS:
        raise ValidationError(f"repeat must be one of {sorted(REPEATS)}")
    return rule


def is_occurrence(anchor: str, repeat: str, candidate: str) -> bool:
    """True if the task anchored at `anchor` is due on `candidate`."""
    if repeat == NONE:
        return candidate == anchor
    if candidate < anchor:
        return False
    if repeat == DAILY:
        return True
    if repeat == WEEKLY:
        return days_between(anchor, candidate) % 7 == 0
    if repeat == MONTHLY:
        # A month without the anchor's day (31st in a 30-day month) has no occurrence.
        return parse_iso_date(candidate).day == parse_iso_date(anchor).day
    return False


def next_anchor(anchor: str, repeat: str) -> str:
    """
    Anchor after one completion (or one skipped occurrence).
    monthly keeps the day-of-month, clamped to the end of shorter months: 2024-01-31 -> 2024-02-29.
    """
    if repeat == DAILY:
        return add_days(anchor, 1)
    if repeat == WEEKLY:
        return add_days(anchor, 7)
    if repeat == MONTHLY:
        return add_months(anchor, 1)
    raise ValueError(f"Task with repeat={repeat!r} has no next occurrence")


def occurrences_between(anchor: str, repeat: str, start: str, end: str) -> list[str]:
    """Every occurrence date in the inclusive window [start, end]."""
    out: list[str] = []
    if end < start:
        return out
    day = start
    while day <= end:
        if is_occurrence(anchor, repeat, day):
            out.append(day)
        day = add_days(day, 1)
    return out
