"""HTTP API for rollday: tasks, history, views, sync status and configuration."""
from __future__ import annotations

import logging
import threading
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from pydantic import BaseModel, ConfigDict, Field

from config import load as load_config
from date_utils import format_date_friendly, is_iso_date, resolve_relative_date
from errors import NotFoundError, ValidationError
from task_service import TaskService, build_service
from task_store import SCOPE_ALL

logger = logging.getLogger("rollday.api")

_service: TaskService | None = None
_service_lock = threading.Lock()


def get_service() -> TaskService:
    """Process-wide TaskService, built from config on first use."""
    global _service
    with _service_lock:
        if _service is None:
            _service = build_service(load_config())
        return _service


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    global _service
    with _service_lock:
        if _service is not None:
            _service.close()
            _service = None


app = FastAPI(title="Rollday", version="1.0", lifespan=lifespan)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """When config.debug is True, log API request method and path."""
    debug = False
    try:
        debug = load_config().debug
        if debug:
            qs = request.url.query
            logger.warning("[API] %s %s%s", request.method, request.url.path, "?" + qs if qs else "")
    except Exception:
        pass
    response = await call_next(request)
    if debug:
        logger.warning("[API] %s %s -> %s", request.method, request.url.path, response.status_code)
    return response


# --- API schemas ---


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class TaskCreate(_Body):
    text: str
    due_date: str | None = Field(default=None, alias="dueDate")
    repeat: str = "none"


class TaskUpdate(_Body):
    text: str
    due_date: str = Field(alias="dueDate")
    repeat: str = "none"


class ConfigUpdate(_Body):
    debug: bool = False
    storage_backend: str = "local"
    database_path: str = ""
    remote_url: str = "http://localhost:8090"
    remote_token: str = ""
    remote_timeout: float = Field(10.0, gt=0)
    remote_poll_interval: float = Field(30.0, ge=0)
    web_ui_port: int = Field(8081, ge=1, le=65535)
    user_timezone: str = ""


def _resolve_due(raw: str | None, service: TaskService) -> str | None:
    """Accept ISO dates and relative phrases ('tomorrow', 'in 3 days'). 400 for anything else."""
    if raw is None or not raw.strip():
        return None
    resolved = resolve_relative_date(raw, service.tz_name, current=service.today())
    if resolved is None:
        raise HTTPException(status_code=400, detail=f"Unrecognized date: {raw}")
    return resolved


def _task_out(task: Any, service: TaskService) -> dict[str, Any]:
    out = task.model_dump(by_alias=True)
    out["dueLabel"] = format_date_friendly(task.due_date, service.tz_name, current=service.today())
    return out


# --- tasks ---


@app.get("/api/tasks")
def api_list_tasks(service: TaskService = Depends(get_service)):
    return [_task_out(t, service) for t in service.list_tasks()]


@app.post("/api/tasks", status_code=201)
def api_create_task(body: TaskCreate, service: TaskService = Depends(get_service)):
    due = _resolve_due(body.due_date, service)
    try:
        task = service.add_task(body.text, due, body.repeat)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _task_out(task, service)


@app.get("/api/tasks/{task_id}")
def api_get_task(task_id: str, service: TaskService = Depends(get_service)):
    try:
        return _task_out(service.get_task(task_id), service)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Task not found")


@app.put("/api/tasks/{task_id}")
def api_update_task(task_id: str, body: TaskUpdate, service: TaskService = Depends(get_service)):
    due = _resolve_due(body.due_date, service)
    if due is None:
        raise HTTPException(status_code=400, detail="dueDate is required")
    try:
        task = service.edit_task(task_id, body.text, due, body.repeat)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if task is None:
        return {"status": "noop"}
    return _task_out(task, service)


@app.delete("/api/tasks/{task_id}")
def api_delete_task(task_id: str, scope: str = SCOPE_ALL, service: TaskService = Depends(get_service)):
    try:
        deleted = service.delete_task(task_id, scope)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"status": "deleted" if deleted else "noop"}


@app.post("/api/tasks/{task_id}/complete")
def api_complete_task(task_id: str, service: TaskService = Depends(get_service)):
    entry = service.complete_task(task_id)
    if entry is None:
        return {"status": "noop"}
    return {"status": "completed", "entry": entry.model_dump(by_alias=True)}


@app.get("/api/tasks/{task_id}/calendar-link")
def api_calendar_link(
    task_id: str,
    time: str = "09:00",
    duration: int = Query(30, ge=1, le=24 * 60),
    service: TaskService = Depends(get_service),
):
    try:
        url = service.calendar_link(task_id, time=time, duration_minutes=duration)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Task not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"url": url}


# --- history ---


@app.get("/api/history")
def api_list_history(service: TaskService = Depends(get_service)):
    return [h.model_dump(by_alias=True) for h in service.list_history()]


@app.post("/api/history/{history_id}/uncomplete")
def api_uncomplete(history_id: str, service: TaskService = Depends(get_service)):
    task = service.uncomplete_history_entry(history_id)
    if task is None:
        return {"status": "noop"}
    return {"status": "restored", "task": _task_out(task, service)}


# --- views ---


@app.get("/api/views/day")
def api_day_view(date: str | None = None, service: TaskService = Depends(get_service)):
    if date is not None and not is_iso_date(date):
        raise HTTPException(status_code=400, detail="date must be YYYY-MM-DD")
    return [item.model_dump(by_alias=True) for item in service.day_view(date)]


@app.get("/api/views/upcoming")
def api_upcoming_view(service: TaskService = Depends(get_service)):
    return [item.model_dump(by_alias=True) for item in service.upcoming_view()]


@app.get("/api/views/history")
def api_history_view(service: TaskService = Depends(get_service)):
    return [group.model_dump(by_alias=True) for group in service.history_view()]


@app.get("/api/stats")
def api_stats(service: TaskService = Depends(get_service)):
    return service.stats().model_dump(by_alias=True)


# --- sync / maintenance ---


@app.get("/api/sync")
def api_sync_status(service: TaskService = Depends(get_service)):
    return service.sync_status()


@app.post("/api/sync/retry")
def api_sync_retry(service: TaskService = Depends(get_service)):
    service.retry_sync()
    return service.sync_status()


@app.post("/api/reset")
def api_reset(service: TaskService = Depends(get_service)):
    service.reset()
    return {"status": "reset"}


# --- config ---


@app.get("/api/config", response_model=ConfigUpdate)
def get_config() -> ConfigUpdate:
    c = load_config()
    return ConfigUpdate(**c.model_dump())


@app.put("/api/config")
def put_config(body: ConfigUpdate) -> dict[str, str]:
    """Save config. Storage settings take effect on the next start."""
    try:
        c = load_config().model_copy(update=body.model_dump())
        c = type(c).model_validate(c.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    c.save()
    return {"status": "saved"}
