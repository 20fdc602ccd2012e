from __future__ import annotations

import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

DB_FILENAME = "winjet.db"


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def resolve_db_path(data_dir: str | os.PathLike[str]) -> Path:
    """Return the sqlite file path under ``<data_dir>/state``, creating the directory."""
    state_dir = Path(data_dir).expanduser().resolve() / "state"
    state_dir.mkdir(parents=True, exist_ok=True)
    return state_dir / DB_FILENAME


def connect(path: str | os.PathLike[str]) -> sqlite3.Connection:
    # The connection is handed between worker threads; callers serialise access.
    conn = sqlite3.connect(os.fspath(path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    """Create tables if they do not exist."""
    with conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS container (
              id TEXT PRIMARY KEY,
              content TEXT NOT NULL, -- ServiceConfig as JSON
              created_at TEXT NOT NULL,
              updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS events (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              level TEXT NOT NULL,
              message TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
            """
        )


def log_event(conn: sqlite3.Connection, level: str, message: str) -> None:
    conn.execute(
        "INSERT INTO events (ts, level, message) VALUES (?, ?, ?)",
        (utc_now(), level.upper(), message),
    )


def fetch_services(conn: sqlite3.Connection, limit: int = 2) -> list[sqlite3.Row]:
    return conn.execute("SELECT * FROM container ORDER BY id LIMIT ?", (limit,)).fetchall()


def count_services(conn: sqlite3.Connection) -> int:
    return int(conn.execute("SELECT COUNT(*) FROM container").fetchone()[0])


def insert_service(conn: sqlite3.Connection, service_id: str, content: str) -> None:
    now = utc_now()
    conn.execute(
        "INSERT INTO container (id, content, created_at, updated_at) VALUES (?, ?, ?, ?)",
        (service_id, content, now, now),
    )


def upsert_service(conn: sqlite3.Connection, service_id: str, content: str) -> None:
    now = utc_now()
    conn.execute(
        """
        INSERT INTO container (id, content, created_at, updated_at)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
          content=excluded.content,
          updated_at=excluded.updated_at
        """,
        (service_id, content, now, now),
    )


def latest_events(conn: sqlite3.Connection, limit: int = 100) -> list[dict[str, Any]]:
    rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
    return [dict(r) for r in rows]
