"""
In-memory task store: the active task collection and the append-only completion history.
All mutations go through here; recurrence effects (advance on complete, skip one occurrence,
restore on un-complete) are applied in place so a recurring task always has exactly one pending instance.
Callers serialize mutations (see task_service.TaskService).
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping

from date_utils import is_iso_date, today as local_today
from errors import NotFoundError, ValidationError
from models import TEXT_MAX_LEN, HistoryEntry, LocalId, RemoteId, Task, TaskIdentity, new_id
from recurrence import NONE, next_anchor, validate_repeat

logger = logging.getLogger("task_store")

SCOPE_ALL = "all"
SCOPE_OCCURRENCE = "occurrence"
DELETE_SCOPES = frozenset({SCOPE_ALL, SCOPE_OCCURRENCE})


def _validate_text(text: str | None) -> str:
    """Raise ValidationError if text is empty after trimming or longer than TEXT_MAX_LEN."""
    if text is None or not str(text).strip():
        raise ValidationError("Task text is required.")
    if len(text) > TEXT_MAX_LEN:
        raise ValidationError(f"Task text must be at most {TEXT_MAX_LEN} characters.")
    return str(text).strip()


def _validate_due_date(due_date: str | None) -> str:
    if not is_iso_date(due_date):
        raise ValidationError("Due date must be a valid YYYY-MM-DD date.")
    return due_date


class TaskStore:
    """
    Active tasks plus completion history.

    - history is kept newest first
    - every task id maps to a TaskIdentity: LocalId until the storage backend acknowledges it,
      RemoteId afterwards; a temporary id that was replaced keeps resolving through an alias
    """

    def __init__(self, today_fn: Callable[[], str] = local_today) -> None:
        self._today = today_fn
        self.tasks: list[Task] = []
        self.history: list[HistoryEntry] = []
        self._identities: dict[str, TaskIdentity] = {}
        self._aliases: dict[str, str] = {}

    # ---- lookup ----

    def resolve_id(self, task_id: str) -> str:
        """Canonical id for task_id (follows temporary -> server id aliases)."""
        return self._aliases.get(task_id, task_id)

    def identity_of(self, task_id: str) -> TaskIdentity | None:
        return self._identities.get(self.resolve_id(task_id))

    def _index_of(self, task_id: str) -> int:
        tid = self.resolve_id(task_id)
        for i, t in enumerate(self.tasks):
            if t.id == tid:
                return i
        raise NotFoundError(f"No task {task_id}")

    def get_task(self, task_id: str) -> Task:
        """Return the active task or raise NotFoundError."""
        return self.tasks[self._index_of(task_id)]

    def find_task(self, task_id: str) -> Task | None:
        try:
            return self.get_task(task_id)
        except NotFoundError:
            return None

    def _history_index_of(self, history_id: str) -> int:
        for i, h in enumerate(self.history):
            if h.history_id == history_id:
                return i
        raise NotFoundError(f"No history entry {history_id}")

    # ---- mutations ----

    def add_task(self, text: str, due_date: str, repeat: str = NONE) -> Task:
        """Append a new pending task with a fresh local id."""
        clean_text = _validate_text(text)
        due = _validate_due_date(due_date)
        rule = validate_repeat(repeat)
        task = Task(id=new_id(), text=clean_text, completed=False, due_date=due, repeat=rule)
        self.tasks.append(task)
        self._identities[task.id] = LocalId(task.id)
        logger.debug("Task added id=%s due=%s repeat=%s", task.id, due, rule)
        return task

    def complete_task(self, task_id: str) -> HistoryEntry | None:
        """
        Snapshot the task into history (completedAt = today). Non-recurring tasks leave the active
        collection; recurring tasks stay, advanced to their next anchor. No-op if missing or already completed.
        """
        try:
            idx = self._index_of(task_id)
        except NotFoundError:
            logger.debug("complete_task: %s not found (no-op)", task_id)
            return None
        task = self.tasks[idx]
        if task.completed:
            return None
        entry = HistoryEntry(
            **task.model_dump(exclude={"completed"}),
            completed=True,
            completed_at=self._today(),
            history_id=new_id(),
        )
        self.history.insert(0, entry)
        if task.repeat == NONE:
            del self.tasks[idx]
        else:
            task.due_date = next_anchor(task.due_date, task.repeat)
            task.completed = False
        logger.debug("Task completed id=%s history_id=%s repeat=%s", task.id, entry.history_id, task.repeat)
        return entry

    def uncomplete_history_entry(self, history_id: str) -> Task | None:
        """
        Remove a history entry and restore the task exactly as it was before that completion.
        Overwrites the live instance of a recurring task (reversing the anchor advance) or inserts it if absent.
        """
        try:
            hidx = self._history_index_of(history_id)
        except NotFoundError:
            logger.debug("uncomplete_history_entry: %s not found (no-op)", history_id)
            return None
        entry = self.history.pop(hidx)
        restored = entry.to_task()
        restored.id = self.resolve_id(restored.id)
        try:
            self.tasks[self._index_of(restored.id)] = restored
        except NotFoundError:
            self.tasks.append(restored)
        self._identities.setdefault(restored.id, LocalId(restored.id))
        logger.debug("History entry %s restored as task %s", history_id, restored.id)
        return restored

    def edit_task(self, task_id: str, text: str, due_date: str, repeat: str = NONE) -> Task | None:
        """Update text, due date and repeat in place. Does not touch completed or history."""
        clean_text = _validate_text(text)
        due = _validate_due_date(due_date)
        rule = validate_repeat(repeat)
        task = self.find_task(task_id)
        if task is None:
            logger.debug("edit_task: %s not found (no-op)", task_id)
            return None
        task.text = clean_text
        task.due_date = due
        task.repeat = rule
        return task

    def delete_task(self, task_id: str, scope: str = SCOPE_ALL) -> bool:
        """
        scope=all removes the task and every future occurrence.
        scope=occurrence skips only the current occurrence of a recurring task (anchor advances, no history).
        Non-recurring tasks are always removed. Returns False when the task does not exist.
        """
        if scope not in DELETE_SCOPES:
            raise ValidationError(f"scope must be one of {sorted(DELETE_SCOPES)}")
        try:
            idx = self._index_of(task_id)
        except NotFoundError:
            logger.debug("delete_task: %s not found (no-op)", task_id)
            return False
        task = self.tasks[idx]
        if scope == SCOPE_OCCURRENCE and task.repeat != NONE:
            task.due_date = next_anchor(task.due_date, task.repeat)
            logger.debug("Task %s occurrence skipped; next due %s", task.id, task.due_date)
            return True
        del self.tasks[idx]
        # Unacknowledged ids are forgotten; a restore from history registers the id again.
        if isinstance(self._identities.get(task.id), LocalId):
            del self._identities[task.id]
        self._aliases = {k: v for k, v in self._aliases.items() if v != task.id}
        logger.debug("Task deleted id=%s", task.id)
        return True

    def reset(self) -> None:
        """Clear tasks, history and identities. Irreversible."""
        self.tasks = []
        self.history = []
        self._identities = {}
        self._aliases = {}
        logger.info("TaskStore reset")

    # ---- snapshots / sync ----

    def snapshot(self) -> tuple[list[Task], list[HistoryEntry]]:
        """Deep copies of the active tasks and history, safe to hand to another thread."""
        return [t.model_copy(deep=True) for t in self.tasks], list(self.history)

    def replace_snapshot(self, tasks: Iterable[Task], history: Iterable[HistoryEntry]) -> None:
        """
        Replace all local state with an authoritative snapshot (initial load, remote change).
        Everything in it is treated as acknowledged by the backend. Duplicate task ids keep the last row.
        """
        by_id: dict[str, Task] = {}
        for t in tasks:
            by_id[t.id] = t.model_copy(deep=True)
        self.tasks = list(by_id.values())
        self.history = list(history)
        self._identities = {tid: RemoteId(tid) for tid in by_id}
        self._aliases = {}

    def pending_local_ids(self) -> list[str]:
        return [tid for tid, ident in self._identities.items() if isinstance(ident, LocalId)]

    def confirm_identities(self, mapping: Mapping[str, str]) -> None:
        """
        Apply backend acknowledgements: mapping is {local id: canonical id}.
        Rewrites the live task and its history entries to the canonical id and records an alias
        so operations still holding the temporary id keep working.
        """
        for temp_id, canonical in mapping.items():
            # Skip empty ids and ids deleted locally before the acknowledgement arrived.
            if not canonical or temp_id not in self._identities:
                continue
            if temp_id != canonical:
                self._aliases[temp_id] = canonical
                for k, v in list(self._aliases.items()):
                    if v == temp_id:
                        self._aliases[k] = canonical
                for t in self.tasks:
                    if t.id == temp_id:
                        t.id = canonical
                self.history = [
                    h.model_copy(update={"id": canonical}) if h.id == temp_id else h for h in self.history
                ]
                self._identities.pop(temp_id, None)
                logger.info("Task id %s confirmed as %s", temp_id, canonical)
            self._identities[canonical] = RemoteId(canonical)
