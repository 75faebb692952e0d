"""SQLite record store — the database collaborator of the health subsystem.

Holds the VoIP backend's record tables and exposes the narrow surface the
health probes need: ping, connection stats, row counts and file size.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path("data") / "switchboard.db"

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT NOT NULL UNIQUE,
        extension TEXT NOT NULL UNIQUE,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS active_calls (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        channel TEXT NOT NULL,
        caller TEXT NOT NULL,
        callee TEXT NOT NULL,
        started_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS call_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        caller TEXT NOT NULL,
        callee TEXT NOT NULL,
        disposition TEXT NOT NULL,
        duration_seconds INTEGER NOT NULL DEFAULT 0,
        started_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_call_logs_started
        ON call_logs (started_at DESC);
"""

# Tables that count_rows() may be asked about
RECORD_TABLES = frozenset({"users", "active_calls", "call_logs"})


class DatabaseUnavailableError(Exception):
    """Raised when the handle has been closed."""


@dataclass(frozen=True)
class PoolStats:
    open_connections: int
    in_use: int
    idle: int


class SQLiteDatabase:
    """Single-connection SQLite handle shared across worker threads."""

    def __init__(self, db_path: Path | None = None, timeout: float = 1.0) -> None:
        self.path = db_path or DEFAULT_DB_PATH
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._timeout = timeout
        self._lock = threading.Lock()
        self._in_use = 0
        self._conn: sqlite3.Connection | None = None
        self._closed = False
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        if self._closed:
            raise DatabaseUnavailableError(f"Database {self.path} is closed")
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.path), timeout=self._timeout, check_same_thread=False)
            self._conn.execute("PRAGMA journal_mode=WAL")
        return self._conn

    def _init_db(self) -> None:
        conn = self._get_conn()
        conn.executescript(_SCHEMA)
        conn.commit()

    def _query_one(self, sql: str) -> tuple:
        with self._lock:
            self._in_use += 1
            try:
                row = self._get_conn().execute(sql).fetchone()
            finally:
                self._in_use -= 1
        return row

    # ── Health surface ───────────────────────────────────────────────────

    def ping(self) -> None:
        """Round-trip a trivial query. Raises on failure."""
        self._query_one("SELECT 1")

    def pool_stats(self) -> PoolStats:
        open_connections = 0 if self._conn is None or self._closed else 1
        in_use = min(self._in_use, open_connections)
        return PoolStats(open_connections=open_connections, in_use=in_use, idle=open_connections - in_use)

    def count_rows(self, entity: str) -> int:
        if entity not in RECORD_TABLES:
            raise ValueError(f"Unknown record table: {entity}")
        row = self._query_one(f"SELECT COUNT(*) FROM {entity}")
        return int(row[0])

    def storage_size(self) -> int:
        """Size of the database file on disk, in bytes."""
        return self.path.stat().st_size

    # ── Writes (used by the backend and by tests) ────────────────────────

    def add_user(self, username: str, extension: str) -> None:
        with self._lock:
            conn = self._get_conn()
            conn.execute(
                "INSERT INTO users (username, extension) VALUES (?, ?)",
                (username, extension),
            )
            conn.commit()

    def log_call(
        self, caller: str, callee: str, disposition: str, duration_seconds: int, started_at: str,
    ) -> None:
        with self._lock:
            conn = self._get_conn()
            conn.execute(
                "INSERT INTO call_logs (caller, callee, disposition, duration_seconds, started_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (caller, callee, disposition, duration_seconds, started_at),
            )
            conn.commit()

    def close(self) -> None:
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None
            self._closed = True
