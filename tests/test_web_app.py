# tests/test_web_app.py

from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from task_service import TaskService
from web_app import app, get_service

from .fakes import FakeBackend


@pytest.fixture()
def client(service: TaskService) -> Iterator[TestClient]:
    app.dependency_overrides[get_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _create(client: TestClient, **body) -> dict:
    r = client.post("/api/tasks", json=body)
    assert r.status_code == 201, r.text
    return r.json()


def test_create_and_list(client: TestClient) -> None:
    created = _create(client, text="Read", dueDate="2024-03-05", repeat="weekly")
    assert created["dueDate"] == "2024-03-05"
    assert created["repeat"] == "weekly"
    assert created["dueLabel"] == "today"
    listed = client.get("/api/tasks").json()
    assert [t["id"] for t in listed] == [created["id"]]


def test_create_defaults_and_relative_dates(client: TestClient) -> None:
    assert _create(client, text="Default")["dueDate"] == "2024-03-05"
    assert _create(client, text="Later", dueDate="tomorrow")["dueDate"] == "2024-03-06"


def test_create_validation_errors(client: TestClient) -> None:
    assert client.post("/api/tasks", json={"text": "x" * 301}).status_code == 400
    assert client.post("/api/tasks", json={"text": "  "}).status_code == 400
    assert client.post("/api/tasks", json={"text": "ok", "repeat": "yearly"}).status_code == 400
    assert client.post("/api/tasks", json={"text": "ok", "dueDate": "someday"}).status_code == 400
    assert client.get("/api/tasks").json() == []


def test_get_update_delete(client: TestClient) -> None:
    created = _create(client, text="Old", dueDate="2024-03-05")
    tid = created["id"]
    assert client.get(f"/api/tasks/{tid}").json()["text"] == "Old"
    assert client.get("/api/tasks/missing").status_code == 404

    r = client.put(f"/api/tasks/{tid}", json={"text": "New", "dueDate": "2024-03-09", "repeat": "monthly"})
    assert r.status_code == 200
    assert (r.json()["text"], r.json()["repeat"]) == ("New", "monthly")
    assert client.put("/api/tasks/missing", json={"text": "x", "dueDate": "2024-03-09"}).json() == {"status": "noop"}

    assert client.delete(f"/api/tasks/{tid}", params={"scope": "sometimes"}).status_code == 400
    assert client.delete(f"/api/tasks/{tid}", params={"scope": "occurrence"}).json() == {"status": "deleted"}
    assert client.get(f"/api/tasks/{tid}").json()["dueDate"] == "2024-04-09"
    assert client.delete(f"/api/tasks/{tid}").json() == {"status": "deleted"}
    assert client.delete(f"/api/tasks/{tid}").json() == {"status": "noop"}


def test_complete_and_uncomplete(client: TestClient) -> None:
    tid = _create(client, text="Gym", dueDate="2024-03-05", repeat="weekly")["id"]
    r = client.post(f"/api/tasks/{tid}/complete").json()
    assert r["status"] == "completed"
    entry = r["entry"]
    assert entry["completedAt"] == "2024-03-05"
    assert client.get(f"/api/tasks/{tid}").json()["dueDate"] == "2024-03-12"
    assert [h["historyId"] for h in client.get("/api/history").json()] == [entry["historyId"]]

    restored = client.post(f"/api/history/{entry['historyId']}/uncomplete").json()
    assert restored["status"] == "restored"
    assert restored["task"]["dueDate"] == "2024-03-05"
    assert client.get("/api/history").json() == []
    assert client.post("/api/history/missing/uncomplete").json() == {"status": "noop"}
    assert client.post("/api/tasks/missing/complete").json() == {"status": "noop"}


def test_views_and_stats(client: TestClient) -> None:
    _create(client, text="Overdue", dueDate="2024-03-01")
    _create(client, text="Stretch", dueDate="2024-03-05", repeat="daily")
    done = _create(client, text="Done", dueDate="2024-03-05")
    client.post(f"/api/tasks/{done['id']}/complete")

    day = client.get("/api/views/day").json()
    assert [row["task"]["text"] for row in day] == ["Overdue", "Stretch", "Done"]
    assert day[0]["overdue"] is True
    assert day[2]["completed"] is True and day[2]["historyId"]
    assert client.get("/api/views/day", params={"date": "03/05/2024"}).status_code == 400
    tomorrow = client.get("/api/views/day", params={"date": "2024-03-06"}).json()
    assert [row["task"]["text"] for row in tomorrow] == ["Stretch"]

    upcoming = client.get("/api/views/upcoming").json()
    assert [(row["date"], row["task"]["text"], row["daily"]) for row in upcoming] == [("2024-03-06", "Stretch", True)]

    groups = client.get("/api/views/history").json()
    assert [g["date"] for g in groups] == ["2024-03-05"]

    stats = client.get("/api/stats").json()
    assert stats == {"active": 2, "completed": 1, "completedToday": 1, "completionPercent": 33}


def test_calendar_link_endpoint(client: TestClient) -> None:
    tid = _create(client, text="Dentist", dueDate="2024-03-08")["id"]
    r = client.get(f"/api/tasks/{tid}/calendar-link", params={"time": "10:15", "duration": 45})
    assert r.status_code == 200
    assert r.json()["url"].startswith("https://calendar.google.com/calendar/render?")
    assert client.get(f"/api/tasks/{tid}/calendar-link", params={"time": "late"}).status_code == 400
    assert client.get("/api/tasks/missing/calendar-link").status_code == 404


def test_sync_status_retry_and_reset(client: TestClient, backend: FakeBackend) -> None:
    _create(client, text="Keep", dueDate="2024-03-05")
    backend.fail = True
    _create(client, text="Offline", dueDate="2024-03-05")
    status = client.get("/api/sync").json()
    assert status["status"] == "error"
    assert status["lastError"] == "backend offline"

    backend.fail = False
    assert client.post("/api/sync/retry").json()["status"] == "saved"
    assert [t["text"] for t in backend.tasks] == ["Keep", "Offline"]

    assert client.post("/api/reset").json() == {"status": "reset"}
    assert client.get("/api/tasks").json() == []
    assert backend.tasks == []


def test_config_round_trip(client: TestClient, isolated_config: Path) -> None:
    current = client.get("/api/config").json()
    assert current["storage_backend"] == "local"
    current["user_timezone"] = "Europe/Berlin"
    assert client.put("/api/config", json=current).json() == {"status": "saved"}
    assert json.loads(isolated_config.read_text())["user_timezone"] == "Europe/Berlin"
    current["storage_backend"] = "carrier-pigeon"
    assert client.put("/api/config", json=current).status_code == 400


def test_malformed_config_does_not_break_requests(client: TestClient, isolated_config: Path) -> None:
    isolated_config.write_text("{not json")
    r = client.get("/api/tasks")
    assert r.status_code == 200
    assert r.json() == []
