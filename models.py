"""
Task and history records, task identities, id minting, and the mapping from raw storage rows to typed records.
Field names are snake_case in Python and camelCase on the wire (dueDate, completedAt, historyId, createdAt).
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from ulid import ULID

from date_utils import is_iso_date
from recurrence import REPEATS

TEXT_MAX_LEN = 300

_id_lock = threading.Lock()
_last_id: ULID | None = None


def new_id() -> str:
    """ULID string, strictly increasing within this process so newest-first ordering is stable."""
    global _last_id
    with _id_lock:
        candidate = ULID()
        if _last_id is not None and int(candidate) <= int(_last_id):
            candidate = ULID.from_int(int(_last_id) + 1)
        _last_id = candidate
        return str(candidate)


def now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class Task(BaseModel):
    """A pending task in the active collection. due_date is the recurrence anchor."""

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    id: str = Field(min_length=1)
    text: str = Field(min_length=1, max_length=TEXT_MAX_LEN)
    completed: bool = False
    due_date: str = Field(alias="dueDate")
    repeat: str = "none"
    created_at: str = Field(default_factory=now_iso, alias="createdAt")

    @field_validator("due_date")
    @classmethod
    def _check_due_date(cls, v: str) -> str:
        if not is_iso_date(v):
            raise ValueError("dueDate must be YYYY-MM-DD")
        return v

    @field_validator("repeat")
    @classmethod
    def _check_repeat(cls, v: str) -> str:
        if v not in REPEATS:
            raise ValueError(f"repeat must be one of {sorted(REPEATS)}")
        return v

    def to_row(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class HistoryEntry(Task):
    """Frozen snapshot of a task taken at completion. id is the originating task's id."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    completed: bool = True
    completed_at: str = Field(alias="completedAt")
    history_id: str = Field(min_length=1, alias="historyId")

    @field_validator("completed_at")
    @classmethod
    def _check_completed_at(cls, v: str) -> str:
        if not is_iso_date(v):
            raise ValueError("completedAt must be YYYY-MM-DD")
        return v

    def to_task(self) -> Task:
        """Pending task rebuilt from the snapshot (same id, completed=False)."""
        return Task(
            id=self.id,
            text=self.text,
            completed=False,
            due_date=self.due_date,
            repeat=self.repeat,
            created_at=self.created_at,
        )


# ---- task identity ----


@dataclass(frozen=True)
class LocalId:
    """Minted on this device; the storage backend has not acknowledged it yet."""

    value: str


@dataclass(frozen=True)
class RemoteId:
    """Acknowledged by the storage backend (server-assigned for the remote backend)."""

    value: str


TaskIdentity = LocalId | RemoteId


# ---- storage row mapping ----


def _coerce_id(raw: Any) -> str | None:
    # Legacy rows used numeric millisecond ids.
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return str(int(raw))
    value = str(raw).strip()
    return value or None


def _coerce_date(raw: Any) -> Any:
    """Accept full ISO timestamps by truncating to the date part."""
    if isinstance(raw, str) and len(raw) > 10 and raw[10] in "T ":
        return raw[:10]
    return raw


def _base_fields(row: dict[str, Any]) -> dict[str, Any]:
    repeat = row.get("repeat")
    fields: dict[str, Any] = {
        "id": _coerce_id(row.get("id")),
        "text": row.get("text"),
        "completed": bool(row.get("completed", False)),
        "dueDate": _coerce_date(row.get("dueDate", row.get("due_date"))),
        "repeat": (str(repeat).strip().lower() if repeat else "none"),
    }
    created = row.get("createdAt", row.get("created_at"))
    if created:
        fields["createdAt"] = str(created)
    return fields


def task_from_row(row: Any) -> Task:
    """Map one raw storage row to a Task. Raise ValueError (pydantic's or ours) if it cannot be coerced."""
    if not isinstance(row, dict):
        raise ValueError(f"task row must be an object, got {type(row).__name__}")
    fields = _base_fields(row)
    # Steady-state active tasks are never completed.
    fields["completed"] = False
    return Task.model_validate(fields)


def history_entry_from_row(row: Any) -> HistoryEntry:
    """Map one raw storage row to a HistoryEntry, minting historyId for legacy rows that lack one."""
    if not isinstance(row, dict):
        raise ValueError(f"history row must be an object, got {type(row).__name__}")
    fields = _base_fields(row)
    fields["completed"] = True
    fields["completedAt"] = _coerce_date(row.get("completedAt", row.get("completed_at")))
    fields["historyId"] = _coerce_id(row.get("historyId", row.get("history_id"))) or new_id()
    return HistoryEntry.model_validate(fields)
