"""SQLite connection management and schema for the news database."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from threading import Lock
from typing import Dict

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS watch_items (
        id TEXT PRIMARY KEY,
        exchange TEXT NOT NULL,
        symbol TEXT NOT NULL,
        company_name TEXT,
        icon_url TEXT,
        alerts_enabled INTEGER NOT NULL DEFAULT 1,
        created_utc TEXT NOT NULL,
        UNIQUE (exchange, symbol)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sources (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        display_name TEXT,
        base_url TEXT NOT NULL,
        enabled INTEGER NOT NULL DEFAULT 1
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS watch_item_sources (
        watch_item_id TEXT NOT NULL REFERENCES watch_items(id) ON DELETE CASCADE,
        source_id INTEGER NOT NULL REFERENCES sources(id) ON DELETE CASCADE,
        custom_query TEXT,
        enabled INTEGER NOT NULL DEFAULT 1,
        PRIMARY KEY (watch_item_id, source_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS news_items (
        id TEXT PRIMARY KEY,
        watch_item_id TEXT NOT NULL REFERENCES watch_items(id) ON DELETE CASCADE,
        source_id INTEGER NOT NULL REFERENCES sources(id) ON DELETE CASCADE,
        title TEXT NOT NULL,
        url TEXT NOT NULL,
        canonical_url TEXT NOT NULL UNIQUE,
        summary TEXT,
        title_hash TEXT NOT NULL,
        simhash64 INTEGER NOT NULL DEFAULT 0,
        published_utc TEXT,
        fetched_utc TEXT NOT NULL,
        is_read INTEGER NOT NULL DEFAULT 0,
        notification_sent INTEGER NOT NULL DEFAULT 0,
        UNIQUE (title_hash, watch_item_id)
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS ix_news_items_unsent
        ON news_items (watch_item_id, notification_sent)
    """,
    """
    CREATE TABLE IF NOT EXISTS crawl_states (
        source_id INTEGER PRIMARY KEY REFERENCES sources(id) ON DELETE CASCADE,
        last_crawl_utc TEXT,
        requests_per_second REAL NOT NULL DEFAULT 1.0,
        requests_per_minute INTEGER NOT NULL DEFAULT 10,
        robots_txt TEXT,
        robots_txt_fetched_utc TEXT,
        consecutive_errors INTEGER NOT NULL DEFAULT 0,
        last_error TEXT,
        last_error_utc TEXT
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
                conn.execute("PRAGMA foreign_keys = ON")
                self._connections[path] = conn
                self._ensure_schema(conn)
            return self._connections[path]

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        for statement in SCHEMA:
            conn.execute(statement)
        conn.commit()

    def close_all(self) -> None:
        with self._lock:
            for conn in self._connections.values():
                conn.close()
            self._connections.clear()


__all__ = ["SCHEMA", "SQLiteManager"]
