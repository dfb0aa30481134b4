from __future__ import annotations

import logging
import os
import sqlite3
from datetime import datetime, timezone
from typing import Any

from .settings import settings

logger = logging.getLogger("dcm")

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _resolve_db_path() -> str:
    """Return a file path usable by sqlite.

    If the configured path is an existing directory (Docker creates one when a
    bind-mounted file does not exist yet), the DB file is placed inside it.
    """

    p = os.path.abspath(settings.db_path)

    if os.path.isdir(p):
        p = os.path.join(p, "dcm.db")

    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)

    return p


def connect() -> sqlite3.Connection:
    conn = sqlite3.connect(_resolve_db_path(), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_db() -> None:
    """Create tables if they do not exist."""
    with connect() as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS events (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              level TEXT NOT NULL,
              container TEXT,
              version TEXT,
              message TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
            CREATE INDEX IF NOT EXISTS idx_events_container ON events(container);
            """
        )


def log_event(level: str, message: str, container: str | None = None, version: str | None = None) -> None:
    level = level.upper()
    if settings.echo_events:
        prefix = f"[{container}] " if container else ""
        logger.log(_LEVELS.get(level, logging.INFO), "%s%s", prefix, message)
    try:
        with connect() as conn:
            conn.execute(
                "INSERT INTO events (ts, level, container, version, message) VALUES (?, ?, ?, ?, ?)",
                (utc_now(), level, container, version, message),
            )
    except sqlite3.Error:
        logger.exception("Cannot write event to %s", settings.db_path)


def latest_events(limit: int = 100, container: str | None = None) -> list[dict[str, Any]]:
    with connect() as conn:
        if container:
            rows = conn.execute(
                "SELECT * FROM events WHERE container=? ORDER BY id DESC LIMIT ?",
                (container, limit),
            ).fetchall()
        else:
            rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [dict(r) for r in rows]


def format_event(event: dict[str, Any]) -> str:
    """Render an events row as a human-readable log line."""
    prefix = f"[{event['container']}] " if event.get("container") else ""
    return f"{event['ts']} {event['level']:<5} {prefix}{event['message']}"
