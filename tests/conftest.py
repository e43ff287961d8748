# tests/conftest.py

from __future__ import annotations

from pathlib import Path

import pytest

from sync_adapter import SyncAdapter
from task_service import TaskService
from task_store import TaskStore

from .fakes import FakeBackend

TODAY = "2024-03-05"


class Clock:
    """Settable 'today' for store and service tests."""

    def __init__(self, value: str = TODAY) -> None:
        self.value = value

    def __call__(self) -> str:
        return self.value


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point config at a per-test file so nothing reads or writes the project's config.json."""
    path = tmp_path / "config.json"
    monkeypatch.setenv("ROLLDAY_CONFIG", str(path))
    return path


@pytest.fixture()
def clock() -> Clock:
    return Clock()


@pytest.fixture()
def store(clock: Clock) -> TaskStore:
    return TaskStore(today_fn=clock)


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def adapter(backend: FakeBackend) -> SyncAdapter:
    return SyncAdapter(backend, background=False)


@pytest.fixture()
def service(adapter: SyncAdapter, clock: Clock) -> TaskService:
    return TaskService(adapter, today_fn=clock)
