"""
View projections over task store state: day view, 7-day upcoming view, history grouped by day, stats.
Pure derivations; nothing here mutates tasks or history.
"""
from __future__ import annotations

from collections.abc import Sequence
from itertools import groupby

from pydantic import BaseModel, ConfigDict, Field

from date_utils import add_days
from models import HistoryEntry, Task
from recurrence import DAILY, NONE, is_occurrence, occurrences_between

UPCOMING_DAYS = 6


class _Row(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class DayItem(_Row):
    """One row of the day view. overdue marks the "Due" flag; completed rows carry their history id."""

    task: Task
    completed: bool = False
    overdue: bool = False
    history_id: str | None = Field(default=None, alias="historyId")


class UpcomingItem(_Row):
    date: str
    task: Task
    daily: bool = False


class HistoryGroup(_Row):
    date: str
    entries: list[HistoryEntry]


class Stats(_Row):
    active: int
    completed: int
    completed_today: int = Field(alias="completedToday")
    completion_percent: int = Field(alias="completionPercent")


def _newest_first_key(task: Task) -> tuple[str, str]:
    return (task.created_at, task.id)


def _on_day(task: Task, selected_date: str, today: str) -> tuple[bool, bool]:
    """(included, overdue) for one active task on selected_date. Overdue means due before today, on today's view."""
    overdue = selected_date == today and task.due_date < today and not task.completed
    if task.due_date == selected_date:
        return True, False
    if task.repeat != NONE and is_occurrence(task.due_date, task.repeat, selected_date):
        return True, overdue
    return overdue, overdue


def day_view(
    tasks: Sequence[Task],
    history: Sequence[HistoryEntry],
    selected_date: str,
    today: str,
) -> list[DayItem]:
    """
    Tasks due on selected_date. On today's view also overdue pending tasks (flagged) and
    today's completions. Pending first (oldest due date first, then newest task first), then completed
    (most recent completion first).
    """
    pending: list[DayItem] = []
    for t in tasks:
        included, overdue = _on_day(t, selected_date, today)
        if included:
            pending.append(DayItem(task=t, completed=t.completed, overdue=overdue))
    # Two stable sorts: newest first, then by due date ascending.
    pending.sort(key=lambda item: _newest_first_key(item.task), reverse=True)
    pending.sort(key=lambda item: (item.completed, item.task.due_date))

    done: list[DayItem] = []
    if selected_date == today:
        done = [
            DayItem(task=h, completed=True, history_id=h.history_id)
            for h in history
            if h.completed_at == today
        ]
        done.sort(key=lambda item: item.history_id or "", reverse=True)
    return pending + done


def upcoming_view(tasks: Sequence[Task], today: str) -> list[UpcomingItem]:
    """
    Occurrences from tomorrow through today+6. Daily tasks contribute a single representative row
    (their first occurrence in the window). Overdue one-off tasks belong to the day view and are left out;
    a recurring task with a past anchor still projects its occurrences inside the window.
    """
    start, end = add_days(today, 1), add_days(today, UPCOMING_DAYS)
    rows: list[UpcomingItem] = []
    for t in tasks:
        if t.completed or (t.repeat == NONE and t.due_date < today):
            continue
        dates = occurrences_between(t.due_date, t.repeat, start, end)
        if t.repeat == DAILY:
            if dates:
                rows.append(UpcomingItem(date=dates[0], task=t, daily=True))
            continue
        rows.extend(UpcomingItem(date=d, task=t) for d in dates)
    rows.sort(key=lambda r: _newest_first_key(r.task), reverse=True)
    rows.sort(key=lambda r: r.date)
    return rows


def history_view(history: Sequence[HistoryEntry]) -> list[HistoryGroup]:
    """Entries grouped by completion day, newest day first; newest entry first inside a day."""
    ordered = sorted(history, key=lambda h: (h.completed_at, h.history_id), reverse=True)
    return [
        HistoryGroup(date=day, entries=list(entries))
        for day, entries in groupby(ordered, key=lambda h: h.completed_at)
    ]


def stats(tasks: Sequence[Task], history: Sequence[HistoryEntry], today: str) -> Stats:
    """Counts for the statistics screen. completion_percent = completed / (completed + active)."""
    active = len(tasks)
    completed = len(history)
    total = active + completed
    return Stats(
        active=active,
        completed=completed,
        completed_today=sum(1 for h in history if h.completed_at == today),
        completion_percent=round(completed * 100 / total) if total else 0,
    )
