"""
Sync adapter: persists task store snapshots through a storage backend without blocking the caller,
maps raw storage rows into typed records (quarantining malformed ones), reconciles temporary task ids
with canonical ids, and polls the backend for out-of-band changes.

Failures never roll back local state; they only set status="error" until the next successful save.
There is no background retry: the caller retries on its next mutation or via retry().
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from errors import SyncError
from models import HistoryEntry, Task, history_entry_from_row, task_from_row
from storage import StorageBackend, StoredState

logger = logging.getLogger("sync_adapter")

STATUS_IDLE = "idle"
STATUS_PENDING = "pending"
STATUS_SAVED = "saved"
STATUS_ERROR = "error"

Rows = tuple[list[dict[str, Any]], list[dict[str, Any]]]


class SyncAdapter:
    """
    Owns one storage backend.

    - dispatch() queues the latest snapshot; a single worker thread writes snapshots in order and
      coalesces bursts (only the newest queued snapshot is written)
    - ids the backend has already re-keyed are rewritten before sending, so a temporary id is never
      presented to the backend twice
    - background=False runs saves inline (tests, CLI tools)
    """

    def __init__(
        self,
        backend: StorageBackend,
        *,
        on_ids_confirmed: Callable[[Mapping[str, str]], None] | None = None,
        on_remote_snapshot: Callable[[list[Task], list[HistoryEntry]], None] | None = None,
        background: bool = True,
    ) -> None:
        self.backend = backend
        self.on_ids_confirmed = on_ids_confirmed
        self.on_remote_snapshot = on_remote_snapshot
        self.background = background
        self.quarantined: list[dict[str, Any]] = []

        self._cond = threading.Condition()
        self._status = STATUS_IDLE
        self._last_error: str | None = None
        self._pending: Rows | None = None
        self._last_rows: Rows | None = None
        self._busy = False
        self._closed = False
        self._confirmed: dict[str, str] = {}
        self._revision: Any = None
        self._worker: threading.Thread | None = None
        self._poller: threading.Thread | None = None
        self._stop_event = threading.Event()

    # ---- status ----

    @property
    def status(self) -> str:
        return self._status

    @property
    def last_error(self) -> str | None:
        return self._last_error

    def status_info(self) -> dict[str, Any]:
        with self._cond:
            return {
                "status": self._status,
                "lastError": self._last_error,
                "quarantined": len(self.quarantined),
            }

    # ---- row mapping ----

    def _quarantine(self, kind: str, row: Any, error: Exception) -> None:
        self.quarantined.append({"kind": kind, "row": row, "error": str(error)})
        logger.warning("Quarantined malformed %s row %r: %s", kind, row, error)

    def map_state(self, state: StoredState) -> tuple[list[Task], list[HistoryEntry]]:
        """
        Typed records for every row that can be coerced; the rest go to quarantine.
        Each snapshot replaces the previous quarantine list.
        """
        self.quarantined = []
        tasks: list[Task] = []
        history: list[HistoryEntry] = []
        for row in state.tasks:
            try:
                tasks.append(task_from_row(row))
            except ValueError as e:
                self._quarantine("task", row, e)
        for row in state.history:
            try:
                history.append(history_entry_from_row(row))
            except ValueError as e:
                self._quarantine("history", row, e)
        return tasks, history

    # ---- load ----

    def load(self) -> tuple[list[Task], list[HistoryEntry]]:
        """Initial load. On SyncError the status flag is set and empty collections are returned."""
        try:
            state = self.backend.load_state()
        except SyncError as e:
            self._set_error(e)
            return [], []
        self._revision = state.revision
        tasks, history = self.map_state(state)
        logger.info("Loaded state tasks=%s history=%s quarantined=%s", len(tasks), len(history), len(self.quarantined))
        return tasks, history

    # ---- save ----

    def dispatch(self, tasks: Sequence[Task], history: Sequence[HistoryEntry]) -> None:
        """Queue a snapshot for persistence and return immediately."""
        rows: Rows = ([t.to_row() for t in tasks], [h.to_row() for h in history])
        with self._cond:
            if self._closed:
                logger.warning("dispatch after close ignored")
                return
            self._pending = rows
            self._last_rows = rows
            self._status = STATUS_PENDING
            if self.background:
                self._ensure_worker()
                self._cond.notify_all()
                return
        self._drain()

    def retry(self) -> bool:
        """Re-dispatch the last snapshot (e.g. on reconnect). False if nothing was ever dispatched."""
        with self._cond:
            rows = self._last_rows
            if rows is None:
                return False
            self._pending = rows
            self._status = STATUS_PENDING
            if self.background:
                self._ensure_worker()
                self._cond.notify_all()
                return True
        self._drain()
        return True

    def flush(self, timeout: float | None = 5.0) -> bool:
        """Wait until queued snapshots are written. True if nothing is left pending."""
        with self._cond:
            return self._cond.wait_for(lambda: self._pending is None and not self._busy, timeout=timeout)

    def _ensure_worker(self) -> None:
        if self._worker is not None and self._worker.is_alive():
            return
        self._worker = threading.Thread(target=self._worker_loop, daemon=True, name="rollday-sync")
        self._worker.start()

    def _worker_loop(self) -> None:
        while True:
            with self._cond:
                self._cond.wait_for(lambda: self._pending is not None or self._closed)
                if self._pending is None and self._closed:
                    return
            self._drain()

    def _drain(self) -> None:
        """Write pending snapshots until none is left."""
        while True:
            with self._cond:
                rows = self._pending
                if rows is None:
                    self._cond.notify_all()
                    return
                self._pending = None
                self._busy = True
            try:
                self._save(rows)
            finally:
                with self._cond:
                    self._busy = False
                    self._cond.notify_all()

    def _rewrite_ids(self, rows: Rows) -> Rows:
        if not self._confirmed:
            return rows
        tasks, history = rows
        fix = self._confirmed
        return (
            [{**t, "id": fix.get(t["id"], t["id"])} for t in tasks],
            [{**h, "id": fix.get(h["id"], h["id"])} for h in history],
        )

    def _save(self, rows: Rows) -> None:
        tasks, history = self._rewrite_ids(rows)
        try:
            result = self.backend.save_state(tasks, history)
        except SyncError as e:
            self._set_error(e)
            return
        renamed = {k: v for k, v in result.ids.items() if k != v}
        with self._cond:
            self._confirmed.update(renamed)
            self._revision = result.revision
            if self._pending is None:
                self._status = STATUS_SAVED
            self._last_error = None
        logger.debug("Saved snapshot tasks=%s history=%s renamed=%s", len(tasks), len(history), len(renamed))
        if self.on_ids_confirmed and result.ids:
            try:
                self.on_ids_confirmed(result.ids)
            except Exception:
                logger.exception("on_ids_confirmed callback failed")

    def _set_error(self, error: Exception) -> None:
        with self._cond:
            self._status = STATUS_ERROR
            self._last_error = str(error)
        logger.warning("Sync failed: %s", error)

    # ---- remote changes ----

    def check_remote(self) -> bool:
        """
        Poll once. If the backend revision moved (and no local save is in flight), load the full remote
        snapshot and hand it to on_remote_snapshot. Returns True when a snapshot was delivered.
        """
        with self._cond:
            if self._pending is not None or self._busy:
                return False
        try:
            revision = self.backend.fetch_revision()
            if revision is None or revision == self._revision:
                return False
            state = self.backend.load_state()
        except SyncError as e:
            self._set_error(e)
            return False
        with self._cond:
            if self._pending is not None or self._busy:
                return False
            self._revision = state.revision
            self._confirmed.clear()
        tasks, history = self.map_state(state)
        logger.info("Remote change detected revision=%s tasks=%s history=%s", state.revision, len(tasks), len(history))
        if self.on_remote_snapshot:
            self.on_remote_snapshot(tasks, history)
        return True

    def _poll_loop(self, interval: float) -> None:
        while not self._stop_event.is_set():
            try:
                self.check_remote()
            except Exception as e:
                logger.warning("Remote poll tick failed: %s", e)
            self._stop_event.wait(timeout=interval)

    def start_polling(self, interval: float = 30.0) -> None:
        """Start the background poller for out-of-band changes. Idempotent."""
        if self._poller is not None and self._poller.is_alive():
            return
        self._stop_event.clear()
        self._poller = threading.Thread(target=self._poll_loop, args=(interval,), daemon=True, name="rollday-poll")
        self._poller.start()
        logger.info("Remote change polling started interval=%ss", interval)

    def stop(self, timeout: float = 5.0) -> None:
        """Stop polling, write what is queued, stop the worker and close the backend."""
        self._stop_event.set()
        self.flush(timeout=timeout)
        with self._cond:
            self._closed = True
            self._cond.notify_all()
        if self._worker is not None:
            self._worker.join(timeout=timeout)
        if self._poller is not None:
            self._poller.join(timeout=timeout)
        close = getattr(self.backend, "close", None)
        if callable(close):
            close()
