"""SQLite database management for the local dashboard store.

Handles connection lifecycle, schema creation, and migrations. The same
database carries the audit log even when records live in the hosted
backend.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

# Current schema version
SCHEMA_VERSION = 2

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_SCHEMA_V1 = """
-- Append-only intake history; the newest row per user is the current profile
CREATE TABLE IF NOT EXISTS user_profiles (
    id           TEXT PRIMARY KEY,
    user_id      TEXT NOT NULL,
    title        TEXT NOT NULL,
    description  TEXT NOT NULL,
    category     TEXT NOT NULL,
    notes_enc    TEXT NOT NULL,
    updated_at   TEXT NOT NULL
);

-- One row per page load
CREATE TABLE IF NOT EXISTS user_visits (
    id           TEXT PRIMARY KEY,
    user_id      TEXT NOT NULL,
    visit_time   TEXT NOT NULL,
    user_agent   TEXT NOT NULL DEFAULT '',
    device       TEXT NOT NULL,
    url          TEXT NOT NULL DEFAULT ''
);

-- Readings cached from the device feed
CREATE TABLE IF NOT EXISTS device_vitals (
    id           INTEGER PRIMARY KEY,
    subject_id   TEXT NOT NULL,
    display_name TEXT NOT NULL DEFAULT '',
    heart_rate   REAL NOT NULL,
    spo2         REAL NOT NULL,
    flagged      INTEGER NOT NULL DEFAULT 0,
    timestamp    INTEGER NOT NULL,
    condition    TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_profiles_user_ts ON user_profiles(user_id, updated_at);
CREATE INDEX IF NOT EXISTS idx_visits_user_ts   ON user_visits(user_id, visit_time);
CREATE INDEX IF NOT EXISTS idx_vitals_ts        ON device_vitals(timestamp);
"""

# ---------------------------------------------------------------------------
# V2: Audit log table (summary generations, LLM disclosure, email sends)
# ---------------------------------------------------------------------------

_SCHEMA_V2 = """
CREATE TABLE IF NOT EXISTS audit_log (
    id              TEXT PRIMARY KEY,
    timestamp       TEXT NOT NULL DEFAULT (datetime('now')),
    action          TEXT NOT NULL,
    tool_name       TEXT,
    tool_input_hash TEXT,
    llm_provider    TEXT,
    llm_disclosed   INTEGER DEFAULT 0,
    duration_ms     REAL,
    status          TEXT NOT NULL DEFAULT 'success',
    error_type      TEXT,
    metadata_json   TEXT
);

CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log(timestamp);
CREATE INDEX IF NOT EXISTS idx_audit_action    ON audit_log(action);
"""


class DatabaseError(Exception):
    """Raised when database operations fail."""


class DashboardDatabase:
    """SQLite database manager for the dashboard.

    Supports both file-based and in-memory (`:memory:`) databases.
    In-memory mode is used for testing.

    Usage::

        db = DashboardDatabase(":memory:")
        db.initialize()
        conn = db.connection
        # ... use connection ...
        db.close()
    """

    def __init__(self, db_path: str = ":memory:") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the active database connection.

        Raises:
            DatabaseError: If the database has not been initialized.
        """
        if self._conn is None:
            raise DatabaseError("Database not initialized. Call initialize() first.")
        return self._conn

    def initialize(self) -> None:
        """Create the database connection and ensure schema exists.

        For file-based databases, creates parent directories if needed.
        Idempotent: safe to call multiple times.
        """
        if self._conn is not None:
            return

        if self._db_path != ":memory:":
            db_file = Path(self._db_path).expanduser()
            db_file.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(db_file), check_same_thread=False)
        else:
            self._conn = sqlite3.connect(":memory:", check_same_thread=False)

        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")

        self._ensure_schema()
        logger.info("Dashboard database initialized: %s", self._db_path)

    def _ensure_schema(self) -> None:
        """Create tables if they don't exist and apply migrations."""
        conn = self.connection

        # V1: record tables (CREATE IF NOT EXISTS is idempotent)
        conn.executescript(_SCHEMA_V1)

        cursor = conn.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        current_version = row[0] if row[0] is not None else 0

        # V2: audit log
        if current_version < 2:
            conn.executescript(_SCHEMA_V2)
            logger.info("Applied schema migration V2: audit_log table")

        if current_version < SCHEMA_VERSION:
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            conn.commit()
            logger.info(
                "Schema updated from version %d to %d", current_version, SCHEMA_VERSION
            )

    def get_schema_version(self) -> int:
        """Return the current schema version."""
        cursor = self.connection.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        return row[0] if row[0] is not None else 0

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("Dashboard database closed")

    def __enter__(self) -> DashboardDatabase:
        self.initialize()
        return self

    def __exit__(self, *args) -> None:
        self.close()
