"""
Storage backends behind the sync adapter: local SQLite key-value file, or a remote HTTP state service.
Backends move raw JSON rows; mapping rows to typed records happens in sync_adapter.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import httpx

from database import get_connection, get_revision, get_values, set_values
from errors import SyncError

logger = logging.getLogger("storage")

TASKS_KEY = "tasks"
HISTORY_KEY = "completedHistory"


@dataclass
class StoredState:
    """Raw rows as persisted. revision is an opaque change marker (None if unknown)."""

    tasks: list[Any] = field(default_factory=list)
    history: list[Any] = field(default_factory=list)
    revision: Any = None


@dataclass
class SaveResult:
    """ids maps every acknowledged client id to its canonical id; revision is the store's marker after the write."""

    ids: dict[str, str] = field(default_factory=dict)
    revision: Any = None


class StorageBackend(Protocol):
    def load_state(self) -> StoredState: ...

    def save_state(self, tasks: list[dict[str, Any]], history: list[dict[str, Any]]) -> SaveResult:
        """Persist both collections and report the canonical id of every task."""
        ...

    def fetch_revision(self) -> Any: ...


class LocalStorage:
    """SQLite key-value file. Ids are canonical as soon as they are written."""

    def __init__(self, db_path: str | Path | None = None) -> None:
        self._db_path = Path(db_path) if db_path else None

    def _connect(self) -> sqlite3.Connection:
        try:
            return get_connection(self._db_path)
        except (sqlite3.Error, OSError) as e:
            raise SyncError(f"Local storage unavailable: {e}") from e

    def load_state(self) -> StoredState:
        conn = self._connect()
        try:
            values = get_values(conn, [TASKS_KEY, HISTORY_KEY])
            return StoredState(
                tasks=values.get(TASKS_KEY) or [],
                history=values.get(HISTORY_KEY) or [],
                revision=get_revision(conn),
            )
        except (sqlite3.Error, ValueError) as e:
            raise SyncError(f"Local load failed: {e}") from e
        finally:
            conn.close()

    def save_state(self, tasks: list[dict[str, Any]], history: list[dict[str, Any]]) -> SaveResult:
        conn = self._connect()
        try:
            set_values(conn, {TASKS_KEY: tasks, HISTORY_KEY: history})
            conn.commit()
            revision = get_revision(conn)
        except sqlite3.Error as e:
            raise SyncError(f"Local save failed: {e}") from e
        finally:
            conn.close()
        logger.debug("Local state saved tasks=%s history=%s", len(tasks), len(history))
        return SaveResult(ids={str(t["id"]): str(t["id"]) for t in tasks}, revision=revision)

    def fetch_revision(self) -> Any:
        conn = self._connect()
        try:
            return get_revision(conn)
        except sqlite3.Error as e:
            raise SyncError(f"Local revision check failed: {e}") from e
        finally:
            conn.close()


class RemoteStorage:
    """
    Sync client for the remote state service.

    GET  /api/state           -> {"revision": ..., "tasks": [...], "history": [...]}
    PUT  /api/state           -> {"revision": ..., "ids": {client_id: server_id}}
    GET  /api/state/revision  -> {"revision": ...}
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(base_url=self.base_url, headers=headers, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            r = self._client.request(method, path, **kwargs)
            r.raise_for_status()
            data = r.json()
        except httpx.HTTPError as e:
            raise SyncError(f"Remote {method} {path} failed: {e}") from e
        except ValueError as e:
            raise SyncError(f"Remote {method} {path} returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise SyncError(f"Remote {method} {path} returned {type(data).__name__}, expected object")
        return data

    def load_state(self) -> StoredState:
        data = self._request("GET", "/api/state")
        tasks = data.get("tasks") or []
        history = data.get("history") or []
        if not isinstance(tasks, list) or not isinstance(history, list):
            raise SyncError("Remote state has non-list tasks/history")
        return StoredState(tasks=tasks, history=history, revision=data.get("revision"))

    def save_state(self, tasks: list[dict[str, Any]], history: list[dict[str, Any]]) -> SaveResult:
        data = self._request("PUT", "/api/state", json={"tasks": tasks, "history": history})
        ids = data.get("ids") or {}
        if not isinstance(ids, dict):
            logger.warning("Remote save returned non-object ids: %r", ids)
            ids = {}
        out = {str(t["id"]): str(t["id"]) for t in tasks}
        out.update({str(k): str(v) for k, v in ids.items() if v is not None})
        return SaveResult(ids=out, revision=data.get("revision"))

    def fetch_revision(self) -> Any:
        return self._request("GET", "/api/state/revision").get("revision")
