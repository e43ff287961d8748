"""
Task Service layer: the application root. All mutations go through here.
Owns the TaskStore and the SyncAdapter, serializes mutations behind one lock, applies each change
optimistically in memory and hands a snapshot to the adapter without waiting for persistence.
Used by the HTTP API (web_app) and the entrypoint (run).
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from calendar_link import google_calendar_url
from date_utils import today as local_today
from models import HistoryEntry, Task
from recurrence import NONE
from storage import LocalStorage, RemoteStorage, StorageBackend
from sync_adapter import SyncAdapter
from task_store import SCOPE_ALL, TaskStore
from views import DayItem, HistoryGroup, Stats, UpcomingItem, day_view, history_view, stats, upcoming_view

if TYPE_CHECKING:
    from config import AppConfig

logger = logging.getLogger("task_service")


class TaskService:
    """
    One instance per process. Mutating methods return the affected record, or None / False when the
    referenced id no longer exists (a silent no-op). ValidationError propagates to the caller.
    """

    def __init__(
        self,
        adapter: SyncAdapter,
        *,
        tz_name: str = "",
        today_fn: Callable[[], str] | None = None,
    ) -> None:
        self._lock = threading.RLock()
        self.tz_name = tz_name
        self._today_fn = today_fn
        self.store = TaskStore(today_fn=self.today)
        self.adapter = adapter
        adapter.on_ids_confirmed = self._apply_confirmed_ids
        adapter.on_remote_snapshot = self._apply_remote_snapshot
        tasks, history = adapter.load()
        self.store.replace_snapshot(tasks, history)
        logger.info("TaskService ready tasks=%s history=%s", len(tasks), len(history))

    def today(self) -> str:
        if self._today_fn is not None:
            return self._today_fn()
        return local_today(self.tz_name)

    # ---- sync plumbing ----

    def _persist(self) -> None:
        tasks, history = self.store.snapshot()
        self.adapter.dispatch(tasks, history)

    def _apply_confirmed_ids(self, mapping: Mapping[str, str]) -> None:
        with self._lock:
            self.store.confirm_identities(mapping)

    def _apply_remote_snapshot(self, tasks: list[Task], history: list[HistoryEntry]) -> None:
        # Whole-collection last-writer-wins.
        with self._lock:
            self.store.replace_snapshot(tasks, history)

    def sync_status(self) -> dict[str, Any]:
        info = self.adapter.status_info()
        with self._lock:
            info["pendingLocalIds"] = len(self.store.pending_local_ids())
        return info

    def retry_sync(self) -> bool:
        """Re-send the current state (caller-driven retry after an error or on reconnect)."""
        with self._lock:
            self._persist()
        return True

    def close(self) -> None:
        self.adapter.stop()

    # ---- mutations ----

    def add_task(self, text: str, due_date: str | None = None, repeat: str = NONE) -> Task:
        """Create a task. due_date defaults to today."""
        with self._lock:
            task = self.store.add_task(text, due_date or self.today(), repeat)
            self._persist()
            return task.model_copy()

    def complete_task(self, task_id: str) -> HistoryEntry | None:
        with self._lock:
            entry = self.store.complete_task(task_id)
            if entry is not None:
                self._persist()
            return entry

    def uncomplete_history_entry(self, history_id: str) -> Task | None:
        with self._lock:
            task = self.store.uncomplete_history_entry(history_id)
            if task is not None:
                self._persist()
                return task.model_copy()
            return None

    def edit_task(self, task_id: str, text: str, due_date: str, repeat: str = NONE) -> Task | None:
        with self._lock:
            task = self.store.edit_task(task_id, text, due_date, repeat)
            if task is not None:
                self._persist()
                return task.model_copy()
            return None

    def delete_task(self, task_id: str, scope: str = SCOPE_ALL) -> bool:
        with self._lock:
            deleted = self.store.delete_task(task_id, scope)
            if deleted:
                self._persist()
            return deleted

    def reset(self) -> None:
        """Clear all tasks and history, locally and in storage."""
        with self._lock:
            self.store.reset()
            self._persist()
        logger.info("All data reset")

    # ---- reads ----

    def get_task(self, task_id: str) -> Task:
        """Raise NotFoundError if the id is unknown."""
        with self._lock:
            return self.store.get_task(task_id).model_copy()

    def list_tasks(self) -> list[Task]:
        with self._lock:
            return self.store.snapshot()[0]

    def list_history(self) -> list[HistoryEntry]:
        with self._lock:
            return self.store.snapshot()[1]

    def day_view(self, selected_date: str | None = None) -> list[DayItem]:
        today = self.today()
        with self._lock:
            tasks, history = self.store.snapshot()
        return day_view(tasks, history, selected_date or today, today)

    def upcoming_view(self) -> list[UpcomingItem]:
        with self._lock:
            tasks, _ = self.store.snapshot()
        return upcoming_view(tasks, self.today())

    def history_view(self) -> list[HistoryGroup]:
        with self._lock:
            _, history = self.store.snapshot()
        return history_view(history)

    def stats(self) -> Stats:
        with self._lock:
            tasks, history = self.store.snapshot()
        return stats(tasks, history, self.today())

    def calendar_link(self, task_id: str, time: str = "09:00", duration_minutes: int = 30) -> str:
        task = self.get_task(task_id)
        return google_calendar_url(
            task.text, task.due_date, time=time, duration_minutes=duration_minutes, tz_name=self.tz_name
        )


def build_backend(config: AppConfig) -> StorageBackend:
    if config.storage_backend == "remote":
        return RemoteStorage(config.remote_url, token=config.remote_token, timeout=config.remote_timeout)
    return LocalStorage(config.database_path or None)


def build_service(config: AppConfig, *, background: bool = True) -> TaskService:
    """Wire config -> backend -> adapter -> service, and start remote polling when configured."""
    adapter = SyncAdapter(build_backend(config), background=background)
    service = TaskService(adapter, tz_name=config.user_timezone)
    if config.storage_backend == "remote" and config.remote_poll_interval > 0:
        adapter.start_polling(config.remote_poll_interval)
    return service


