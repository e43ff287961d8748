"""
SQLite key-value file backing the local storage backend.
Self-bootstrapping: creates the DB file and table on first use. Values are JSON documents keyed by name
("tasks", "completedHistory"), mirroring the desktop app's key-value store.
"""
from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any

# Default DB path: project directory
_DEFAULT_DB_PATH = Path(__file__).resolve().parent / "rollday.db"

# Wait up to this many seconds for locks (web process and sync worker share the file)
_CONNECT_TIMEOUT = 30.0

_SCHEMA = """
-- key: logical collection name; value: JSON document; revision bumps on every write
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    revision INTEGER NOT NULL DEFAULT 1
);
"""


def get_db_path() -> Path:
    """Return the database file path (from config if set)."""
    from config import load as load_config

    path = load_config().database_path
    if path:
        return Path(path)
    return _DEFAULT_DB_PATH


def init_database(path: Path | None = None) -> Path:
    """
    Ensure the database exists and is initialized. Returns the path to the database file.
    """
    db_path = (path or get_db_path()).resolve()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), timeout=_CONNECT_TIMEOUT)
    try:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.executescript(_SCHEMA)
        conn.commit()
    finally:
        conn.close()
    return db_path


def get_connection(path: Path | None = None) -> sqlite3.Connection:
    """Return a connection to the database. Initializes it if needed."""
    db_path = init_database(path)
    conn = sqlite3.connect(str(db_path), timeout=_CONNECT_TIMEOUT)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.row_factory = sqlite3.Row
    return conn


def get_values(conn: sqlite3.Connection, keys: list[str]) -> dict[str, Any]:
    """Decoded JSON values for the keys that exist."""
    placeholders = ",".join("?" for _ in keys)
    rows = conn.execute(f"SELECT key, value FROM kv WHERE key IN ({placeholders})", keys).fetchall()
    return {r["key"]: json.loads(r["value"]) for r in rows}


def set_values(conn: sqlite3.Connection, values: dict[str, Any]) -> None:
    """Upsert JSON values. Caller commits."""
    for key, value in values.items():
        conn.execute(
            """INSERT INTO kv (key, value) VALUES (?, ?)
               ON CONFLICT(key) DO UPDATE SET
                   value = excluded.value,
                   updated_at = strftime('%Y-%m-%dT%H:%M:%SZ', 'now'),
                   revision = kv.revision + 1""",
            (key, json.dumps(value, ensure_ascii=False)),
        )


def get_revision(conn: sqlite3.Connection) -> int:
    """Sum of per-key revisions; changes whenever any value is written."""
    row = conn.execute("SELECT COALESCE(SUM(revision), 0) FROM kv").fetchone()
    return int(row[0])


def migrate(path: Path | None = None) -> Path:
    """Create the database file and schema. Use this to bootstrap manually: python -m database"""
    return init_database(path)


if __name__ == "__main__":
    p = migrate()
    print("Database ready:", p)
