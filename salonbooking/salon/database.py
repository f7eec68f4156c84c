"""Database utilities for the salon booking service."""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path

log = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class DatabaseUnavailable(RuntimeError):
    """Raised when the visit store cannot be opened."""


def dict_factory(cursor: sqlite3.Cursor, row: sqlite3.Row) -> dict:
    """Return rows as dictionaries rather than tuples."""

    return {description[0]: row[idx] for idx, description in enumerate(cursor.description)}


def get_connection(path: str | Path, timeout: float = 8.0) -> sqlite3.Connection:
    """Return a SQLite connection with sensible defaults.

    The connection may be shared between request threads; callers serialise
    access through :class:`Database`.
    """

    conn = sqlite3.connect(path, timeout=timeout, check_same_thread=False)
    conn.row_factory = dict_factory
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA busy_timeout = 5000")
    return conn


def initialize_database(conn: sqlite3.Connection) -> None:
    """Create the database schema if it does not yet exist."""

    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS metadata (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS visits (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            contact TEXT NOT NULL,
            age INTEGER CHECK (age IS NULL OR (age BETWEEN 1 AND 120)),
            gender TEXT CHECK (gender IS NULL OR gender IN ('Male', 'Female', 'Other')),
            date TEXT NOT NULL,
            start_time TEXT NOT NULL,
            end_time TEXT NOT NULL,
            artist TEXT NOT NULL,
            service_type TEXT,
            filled_by TEXT,
            subtotal REAL NOT NULL CHECK (subtotal >= 0),
            discount_percent REAL NOT NULL DEFAULT 0,
            discount_amount REAL NOT NULL DEFAULT 0,
            final_total REAL NOT NULL CHECK (final_total >= 0),
            payment_status TEXT NOT NULL DEFAULT 'pending'
                CHECK (payment_status IN ('pending', 'success', 'failed')),
            razorpay_payment_id TEXT,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS visit_services (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            visit_id INTEGER NOT NULL,
            position INTEGER NOT NULL,
            name TEXT NOT NULL,
            price REAL NOT NULL CHECK (price >= 0),
            FOREIGN KEY(visit_id) REFERENCES visits(id) ON DELETE CASCADE
        );

        CREATE INDEX IF NOT EXISTS idx_visits_date ON visits(date);
        CREATE INDEX IF NOT EXISTS idx_visits_artist_date ON visits(artist, date);
        CREATE INDEX IF NOT EXISTS idx_visits_contact ON visits(contact);
        CREATE INDEX IF NOT EXISTS idx_visit_services_visit ON visit_services(visit_id, position);
        """
    )

    set_metadata(conn, "schema_version", SCHEMA_VERSION)


def set_metadata(conn: sqlite3.Connection, key: str, value: int | str) -> None:
    conn.execute(
        "INSERT INTO metadata(key, value) VALUES (?, ?)\n         ON CONFLICT(key) DO UPDATE SET value = excluded.value",
        (key, str(value)),
    )
    conn.commit()


def get_metadata(conn: sqlite3.Connection, key: str, default: str | None = None) -> str | None:
    row = conn.execute("SELECT value FROM metadata WHERE key = ?", (key,)).fetchone()
    return row["value"] if row else default


class Database:
    """Lazily opened connection shared by every request in the process.

    The first caller opens and initialises the connection while holding the
    lock; callers racing it block on the same lock and get the same handle.
    A failed attempt leaves nothing cached, so the next call tries again.
    """

    def __init__(self, path: str | Path, timeout: float = 8.0) -> None:
        self.path = path
        self.timeout = timeout
        self.lock = threading.RLock()
        self._conn: sqlite3.Connection | None = None

    @property
    def connected(self) -> bool:
        return self._conn is not None

    def connect(self) -> sqlite3.Connection:
        if self._conn is not None:
            return self._conn
        with self.lock:
            if self._conn is not None:
                return self._conn
            log.info("[db] Opening visit store at %s", self.path)
            conn = None
            try:
                conn = get_connection(self.path, timeout=self.timeout)
                initialize_database(conn)
            except sqlite3.Error as exc:
                if conn is not None:
                    conn.close()
                log.error("[db] Could not open visit store: %s", exc)
                raise DatabaseUnavailable(str(exc)) from exc
            self._conn = conn
            log.info("[db] Visit store ready (schema v%s)", get_metadata(conn, "schema_version"))
            return conn

    def close(self) -> None:
        with self.lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
