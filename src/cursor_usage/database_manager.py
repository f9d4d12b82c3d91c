from __future__ import annotations

"""SQLite storage and migrations for the indicator's settings.

Each schema change is a function in the MIGRATIONS list; applied versions
are tracked in the ``schema_migrations`` table.

Idempotency: ``init_db`` can be safely called multiple times.

The connection is shared between the Qt thread (preferences dialog) and the
engine loop thread, so every statement runs under ``_lock``.
"""

from dataclasses import dataclass
from pathlib import Path
import sqlite3
import threading
from typing import Callable, Iterable


@dataclass(slots=True)
class DBConfig:
    path: Path
    pragmas: tuple[tuple[str, str | int], ...] = (
        ("journal_mode", "WAL"),
        ("synchronous", "NORMAL"),
    )


class DatabaseManager:
    def __init__(self, config: DBConfig):
        self.config = config
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    # --- Low level helpers -------------------------------------------------
    def connect(self) -> sqlite3.Connection:
        with self._lock:
            if self._conn is None:
                self.config.path.parent.mkdir(parents=True, exist_ok=True)
                self._conn = sqlite3.connect(self.config.path, check_same_thread=False)
                self._conn.row_factory = sqlite3.Row
                self._apply_pragmas(self._conn)
            return self._conn

    def _apply_pragmas(self, conn: sqlite3.Connection) -> None:
        cur = conn.cursor()
        for key, value in self.config.pragmas:
            cur.execute(f"PRAGMA {key}={value}")
        cur.close()

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    # --- Migration system --------------------------------------------------
    def init_db(self) -> None:
        conn = self.connect()
        with self._lock, conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ','now'))
                )
                """
            )

        applied_versions = self._get_applied_versions()
        for version, migration_fn in enumerate(MIGRATIONS, start=1):
            if version in applied_versions:
                continue
            with self._lock, conn:
                migration_fn(conn)
                conn.execute(
                    "INSERT INTO schema_migrations (version) VALUES (?)", (version,)
                )

    def _get_applied_versions(self) -> set[int]:
        return {row[0] for row in self.query_all("SELECT version FROM schema_migrations")}

    # --- Convenience -------------------------------------------------------
    def execute(self, sql: str, params: Iterable | None = None) -> None:
        conn = self.connect()
        with self._lock, conn:
            conn.execute(sql, params or [])

    def query_all(self, sql: str, params: Iterable | None = None) -> list[sqlite3.Row]:
        conn = self.connect()
        with self._lock:
            return conn.execute(sql, params or []).fetchall()

    def query_one(self, sql: str, params: Iterable | None = None) -> sqlite3.Row | None:
        conn = self.connect()
        with self._lock:
            return conn.execute(sql, params or []).fetchone()


# --- Migration definitions --------------------------------------------------

def migration_001_add_settings_table(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ','now'))
        );
        """
    )


MIGRATIONS: list[Callable[[sqlite3.Connection], None]] = [
    migration_001_add_settings_table,
]

__all__ = [
    "DBConfig",
    "DatabaseManager",
]
