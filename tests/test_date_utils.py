# tests/test_date_utils.py

from __future__ import annotations

import re
from datetime import date

import pytest

import date_utils
from date_utils import (
    add_days,
    add_months,
    compare_dates,
    days_between,
    format_date_friendly,
    is_iso_date,
    parse_iso_date,
    resolve_relative_date,
)


def test_today_is_iso_local_date() -> None:
    value = date_utils.today()
    assert re.match(r"^\d{4}-\d{2}-\d{2}$", value)
    assert abs(days_between(date.today().isoformat(), value)) <= 1


def test_today_with_named_zone() -> None:
    assert is_iso_date(date_utils.today("America/New_York"))


@pytest.mark.parametrize(
    ("start", "n", "expected"),
    [
        ("2024-01-31", 1, "2024-02-01"),
        ("2024-02-28", 1, "2024-02-29"),
        ("2023-02-28", 1, "2023-03-01"),
        ("2024-12-31", 1, "2025-01-01"),
        ("2025-01-01", -1, "2024-12-31"),
        ("2024-03-10", 7, "2024-03-17"),  # US DST starts 2024-03-10
        ("2024-11-03", -7, "2024-10-27"),
    ],
)
def test_add_days(start: str, n: int, expected: str) -> None:
    assert add_days(start, n) == expected


@pytest.mark.parametrize(
    ("start", "n", "expected"),
    [
        ("2024-01-15", 1, "2024-02-15"),
        ("2024-01-31", 1, "2024-02-29"),
        ("2023-01-31", 1, "2023-02-28"),
        ("2024-03-31", 1, "2024-04-30"),
        ("2024-12-05", 1, "2025-01-05"),
        ("2024-03-31", -1, "2024-02-29"),
    ],
)
def test_add_months_clamps_to_month_end(start: str, n: int, expected: str) -> None:
    assert add_months(start, n) == expected


def test_compare_and_days_between() -> None:
    assert compare_dates("2024-01-01", "2024-01-02") == -1
    assert compare_dates("2024-01-02", "2024-01-02") == 0
    assert compare_dates("2024-10-01", "2024-09-30") == 1
    assert days_between("2024-03-01", "2024-03-15") == 14
    assert days_between("2024-03-15", "2024-03-01") == -14
    assert days_between("2023-12-25", "2024-01-01") == 7


def test_iso_validation() -> None:
    assert is_iso_date("2024-02-29")
    assert not is_iso_date("2023-02-29")
    assert not is_iso_date("2024-2-9")
    assert not is_iso_date("")
    assert not is_iso_date(None)
    with pytest.raises(ValueError):
        parse_iso_date("2024-13-01")


def test_resolve_relative_date(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(date_utils, "today", lambda tz_name="": "2024-03-05")  # a Tuesday
    assert resolve_relative_date("today") == "2024-03-05"
    assert resolve_relative_date("Tomorrow") == "2024-03-06"
    assert resolve_relative_date("yesterday") == "2024-03-04"
    assert resolve_relative_date("in 3 days") == "2024-03-08"
    assert resolve_relative_date("next week") == "2024-03-12"
    assert resolve_relative_date("monday") == "2024-03-11"
    assert resolve_relative_date("tuesday") == "2024-03-12"
    assert resolve_relative_date("due 2024-04-01") == "2024-04-01"
    assert resolve_relative_date("2024-02-30") is None
    assert resolve_relative_date("someday") is None
    assert resolve_relative_date("  ") is None


def test_format_date_friendly(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(date_utils, "today", lambda tz_name="": "2024-03-05")
    assert format_date_friendly("2024-03-05") == "today"
    assert format_date_friendly("2024-03-06") == "tomorrow"
    assert format_date_friendly("2024-03-04") == "yesterday"
    assert format_date_friendly("2024-12-25") == "12/25"
    assert format_date_friendly("not a date") == "not a date"
