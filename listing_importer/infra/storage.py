"""SQLite connection management and schema for destination lists."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from threading import Lock
from typing import Dict

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS listing_lists (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL,
        last_modified TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS listings (
        id TEXT PRIMARY KEY,
        list_id TEXT NOT NULL REFERENCES listing_lists(id),
        business_name TEXT NOT NULL,
        type_of_business TEXT NOT NULL DEFAULT '',
        business_phone TEXT NOT NULL DEFAULT '',
        has_website INTEGER NOT NULL DEFAULT 0,
        website_url TEXT NOT NULL DEFAULT '',
        street TEXT NOT NULL DEFAULT '',
        apt_unit TEXT NOT NULL DEFAULT '',
        city TEXT NOT NULL DEFAULT '',
        state TEXT NOT NULL DEFAULT '',
        zip_code TEXT NOT NULL DEFAULT '',
        country TEXT NOT NULL DEFAULT 'USA',
        full_address TEXT NOT NULL DEFAULT '',
        status TEXT NOT NULL DEFAULT 'not-contacted',
        priority TEXT NOT NULL DEFAULT 'low',
        notes TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL,
        last_modified TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_listings_list_id ON listings(list_id)",
    """
    CREATE TABLE IF NOT EXISTS list_members (
        list_id TEXT NOT NULL REFERENCES listing_lists(id),
        listing_id TEXT NOT NULL,
        position INTEGER NOT NULL,
        PRIMARY KEY (list_id, listing_id)
    )
    """,
)


class SQLiteManager:
    """Manage SQLite connections with basic schema guarantees."""

    def __init__(self) -> None:
        self._connections: Dict[Path, sqlite3.Connection] = {}
        self._lock = Lock()

    def connect(self, path: Path) -> sqlite3.Connection:
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            if path not in self._connections:
                conn = sqlite3.connect(path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                self._connections[path] = conn
                self._ensure_schema(conn)
            return self._connections[path]

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        for statement in _SCHEMA:
            conn.execute(statement)
        conn.commit()

    def close_all(self) -> None:
        with self._lock:
            for conn in self._connections.values():
                conn.close()
            self._connections.clear()


__all__ = ["SQLiteManager"]
