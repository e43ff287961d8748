"""Configuration load/save for rollday."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field

CONFIG_PATH = Path(__file__).resolve().parent / "config.json"


def config_path() -> Path:
    """config.json next to the code, or the file named by ROLLDAY_CONFIG."""
    override = os.environ.get("ROLLDAY_CONFIG", "").strip()
    return Path(override) if override else CONFIG_PATH


class AppConfig(BaseModel):
    """Persisted application configuration."""

    debug: bool = Field(default=False, description="Log every API request and response status")
    storage_backend: Literal["local", "remote"] = Field(default="local", description="Where task state is persisted")
    database_path: str = Field(default="", description="Path to SQLite file for the local backend; empty = project dir / rollday.db")
    remote_url: str = Field(default="http://localhost:8090", description="Base URL of the remote state service (no path)")
    remote_token: str = Field(default="", description="Bearer token for the remote state service")
    remote_timeout: float = Field(default=10.0, gt=0, description="Seconds before a remote request fails")
    remote_poll_interval: float = Field(default=30.0, ge=0, description="Seconds between remote change checks; 0 disables polling")
    web_ui_port: int = Field(default=8081, ge=1, le=65535, description="Port for the HTTP API")
    user_timezone: str = Field(default="", description="IANA timezone for 'today' (e.g. America/New_York); empty = system local time")

    def to_save_dict(self) -> dict[str, Any]:
        return self.model_dump()

    @classmethod
    def load(cls, path: Path | None = None) -> "AppConfig":
        p = path or config_path()
        if not p.exists():
            return cls()
        raw = json.loads(p.read_text())
        return cls.model_validate(raw)

    def save(self, path: Path | None = None) -> None:
        (path or config_path()).write_text(json.dumps(self.to_save_dict(), indent=2))


def load(path: Path | None = None) -> AppConfig:
    """Load config from disk. Convenience alias for AppConfig.load()."""
    return AppConfig.load(path)
