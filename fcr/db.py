from __future__ import annotations

import os
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable

from .settings import settings


def utc_now() -> str:
    return datetime.utcnow().strftime("%Y-%m-%dT%H:%M:%SZ")


def _resolve_db_path() -> str:
    """Return a file path usable by sqlite.

    Why this exists:
    - On many systems, if a bind-mounted *file* path does not exist,
      Docker creates a *directory* at that location. If we then try to
      open SQLite on that path, sqlite fails with "unable to open database file".
    - To make the project resilient, if the configured path is a directory,
      we place the DB file inside it.
    """

    p = os.path.abspath(settings.db_path)

    # If the path exists and is a directory, store the DB file within it.
    if os.path.isdir(p):
        p = os.path.join(p, "fcr.db")

    # Ensure parent directory exists.
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
            CREATE TABLE IF NOT EXISTS objects (
              kind TEXT NOT NULL,          -- Client|Upstream|ConfigArtifact
              namespace TEXT NOT NULL,
              name TEXT NOT NULL,
              uid TEXT NOT NULL UNIQUE,
              owner_uid TEXT,              -- controller owner, for cascading deletes
              body TEXT NOT NULL,          -- JSON document of the resource
              created_at TEXT NOT NULL,
              updated_at TEXT NOT NULL,
              PRIMARY KEY(kind, namespace, name)
            );

            CREATE TABLE IF NOT EXISTS events (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              level TEXT NOT NULL,
              namespace TEXT,
              client TEXT,
              message TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
            CREATE INDEX IF NOT EXISTS idx_objects_owner_uid ON objects(owner_uid);
            """
        )


def log_event(level: str, message: str, namespace: str | None = None, client: str | None = None) -> None:
    with connect() as conn:
        conn.execute(
            "INSERT INTO events (ts, level, namespace, client, message) VALUES (?, ?, ?, ?, ?)",
            (utc_now(), level.upper(), namespace, client, message),
        )


@dataclass(frozen=True)
class ObjectRow:
    kind: str
    namespace: str
    name: str
    uid: str
    owner_uid: str | None
    body: str
    created_at: str
    updated_at: str


def _rows_to_dataclass(rows: Iterable[sqlite3.Row], cls: Any) -> list[Any]:
    out: list[Any] = []
    for r in rows:
        out.append(cls(**dict(r)))
    return out


def get_object(kind: str, namespace: str, name: str) -> ObjectRow | None:
    with connect() as conn:
        row = conn.execute(
            "SELECT * FROM objects WHERE kind=? AND namespace=? AND name=?",
            (kind, namespace, name),
        ).fetchone()
        return ObjectRow(**dict(row)) if row else None


def list_objects(kind: str, namespace: str | None = None) -> list[ObjectRow]:
    with connect() as conn:
        if namespace:
            cur = conn.execute(
                "SELECT * FROM objects WHERE kind=? AND namespace=? ORDER BY namespace, name",
                (kind, namespace),
            )
        else:
            cur = conn.execute("SELECT * FROM objects WHERE kind=? ORDER BY namespace, name", (kind,))
        return _rows_to_dataclass(cur.fetchall(), ObjectRow)


def list_owned(owner_uid: str) -> list[ObjectRow]:
    with connect() as conn:
        rows = conn.execute("SELECT * FROM objects WHERE owner_uid=? ORDER BY kind, name", (owner_uid,)).fetchall()
        return _rows_to_dataclass(rows, ObjectRow)


def insert_object(kind: str, namespace: str, name: str, uid: str, owner_uid: str | None, body: str) -> ObjectRow:
    """Insert a new object; raises sqlite3.IntegrityError if it already exists."""
    now = utc_now()
    with connect() as conn:
        conn.execute(
            """
            INSERT INTO objects (kind, namespace, name, uid, owner_uid, body, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (kind, namespace, name, uid, owner_uid, body, now, now),
        )
        row = conn.execute(
            "SELECT * FROM objects WHERE kind=? AND namespace=? AND name=?",
            (kind, namespace, name),
        ).fetchone()
        return ObjectRow(**dict(row))


def update_object(kind: str, namespace: str, name: str, owner_uid: str | None, body: str) -> bool:
    with connect() as conn:
        cur = conn.execute(
            """
            UPDATE objects
            SET owner_uid=?, body=?, updated_at=?
            WHERE kind=? AND namespace=? AND name=?
            """,
            (owner_uid, body, utc_now(), kind, namespace, name),
        )
        return cur.rowcount > 0


def delete_object(kind: str, namespace: str, name: str) -> bool:
    with connect() as conn:
        cur = conn.execute(
            "DELETE FROM objects WHERE kind=? AND namespace=? AND name=?",
            (kind, namespace, name),
        )
        return cur.rowcount > 0


def latest_events(limit: int = 100, client: str | None = None) -> list[dict[str, Any]]:
    with connect() as conn:
        if client:
            rows = conn.execute(
                "SELECT * FROM events WHERE client=? ORDER BY id DESC LIMIT ?",
                (client, limit),
            ).fetchall()
        else:
            rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [dict(r) for r in rows]
