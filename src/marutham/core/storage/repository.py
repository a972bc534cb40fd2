"""SQLite record store: profile history, visits and cached device vitals.

The store mediates between record types (ProfileRecord, etc.) and the
SQLite database. When a FieldEncryptor is supplied, free-text notes are
encrypted at rest.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from marutham.core.storage.database import DashboardDatabase, DatabaseError
from marutham.core.storage.encryption import EncryptionError, FieldEncryptor
from marutham.core.storage.models import (
    BackendError,
    ClientMetadata,
    ProfileRecord,
    VisitRecord,
    VitalsReading,
    validate_profile_fields,
)

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@contextmanager
def _backend_errors() -> Iterator[None]:
    """Translate driver, connection and decryption failures into BackendError."""
    try:
        yield
    except (sqlite3.Error, DatabaseError) as exc:
        raise BackendError(f"Database error: {exc}") from exc
    except EncryptionError as exc:
        raise BackendError(str(exc)) from exc


class SQLiteRecordStore:
    """Record store backed by the local SQLite database.

    Usage::

        db = DashboardDatabase(":memory:")
        db.initialize()
        store = SQLiteRecordStore(db, FieldEncryptor(key="..."))

        await store.upsert_profile("ana@example.com", {...})
        history = await store.list_profile_history("ana@example.com")
    """

    backend_name = "sqlite"

    def __init__(
        self,
        database: DashboardDatabase,
        encryptor: FieldEncryptor | None = None,
        *,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        self._db = database
        self._enc = encryptor
        self._clock = clock

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    def _seal(self, text: str) -> str:
        return self._enc.encrypt(text) if self._enc is not None else text

    def _unseal(self, stored: str) -> str:
        return self._enc.decrypt(stored) if self._enc is not None else stored

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    async def upsert_profile(self, user_id: str, fields: dict[str, Any]) -> ProfileRecord:
        """Append a new profile version for ``user_id``.

        History rows are never updated; the newest row is the current profile.

        Raises:
            RecordValidationError: If a field is missing or invalid.
            BackendError: If the write fails.
        """
        clean = validate_profile_fields(fields)
        record = ProfileRecord(user_id=user_id, updated_at=self._clock(), id=self._new_id(), **clean)

        with _backend_errors():
            conn = self._db.connection
            conn.execute(
                """INSERT INTO user_profiles
                   (id, user_id, title, description, category, notes_enc, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    record.id,
                    record.user_id,
                    record.title,
                    record.description,
                    record.category,
                    self._seal(record.notes),
                    record.updated_at,
                ),
            )
            conn.commit()
        logger.info("Saved profile version %s for user %s", record.id, _mask(user_id))
        return record

    async def list_profile_history(self, user_id: str) -> list[ProfileRecord]:
        """All profile versions for ``user_id``, newest first."""
        with _backend_errors():
            rows = self._db.connection.execute(
                """SELECT * FROM user_profiles WHERE user_id = ?
                   ORDER BY updated_at DESC, rowid DESC""",
                (user_id,),
            ).fetchall()
            return [self._row_to_profile(row) for row in rows]

    async def current_profile(self, user_id: str) -> ProfileRecord | None:
        """The profile row with the greatest ``updated_at``, or None."""
        with _backend_errors():
            row = self._db.connection.execute(
                """SELECT * FROM user_profiles WHERE user_id = ?
                   ORDER BY updated_at DESC, rowid DESC LIMIT 1""",
                (user_id,),
            ).fetchone()
            return self._row_to_profile(row) if row is not None else None

    def _row_to_profile(self, row: sqlite3.Row) -> ProfileRecord:
        data = dict(row)
        data["notes"] = self._unseal(data.pop("notes_enc") or "")
        return ProfileRecord.from_dict(data)

    # ------------------------------------------------------------------
    # Visits
    # ------------------------------------------------------------------

    async def record_visit(self, user_id: str, client: ClientMetadata) -> VisitRecord:
        """Insert one visit row. Visits are never updated or deleted."""
        visit = VisitRecord(user_id=user_id, visit_time=self._clock(), client=client, id=self._new_id())
        with _backend_errors():
            conn = self._db.connection
            conn.execute(
                """INSERT INTO user_visits (id, user_id, visit_time, user_agent, device, url)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (visit.id, user_id, visit.visit_time, client.user_agent, client.device, client.url),
            )
            conn.commit()
        logger.debug("Recorded visit for user %s (%s)", _mask(user_id), client.device)
        return visit

    async def list_visits(self, user_id: str) -> list[VisitRecord]:
        """All visits for ``user_id``, newest first."""
        with _backend_errors():
            rows = self._db.connection.execute(
                """SELECT * FROM user_visits WHERE user_id = ?
                   ORDER BY visit_time DESC, rowid DESC""",
                (user_id,),
            ).fetchall()
        return [
            VisitRecord.from_dict({
                "id": row["id"],
                "user_id": row["user_id"],
                "visit_time": row["visit_time"],
                "visit_data": {
                    "user_agent": row["user_agent"],
                    "device": row["device"],
                    "url": row["url"],
                },
            })
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Device vitals
    # ------------------------------------------------------------------

    async def list_vitals(self) -> list[VitalsReading]:
        """Cached device readings, newest first."""
        with _backend_errors():
            rows = self._db.connection.execute(
                "SELECT * FROM device_vitals ORDER BY timestamp DESC, id DESC"
            ).fetchall()
        return [VitalsReading.from_dict(dict(row)) for row in rows]

    async def save_vitals(self, readings: Iterable[VitalsReading]) -> int:
        """Cache readings pulled from the device feed. Existing ids are replaced."""
        count = 0
        with _backend_errors():
            conn = self._db.connection
            for r in readings:
                conn.execute(
                    """INSERT OR REPLACE INTO device_vitals
                       (id, subject_id, display_name, heart_rate, spo2, flagged, timestamp, condition)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        r.id,
                        r.subject_id,
                        r.display_name,
                        r.heart_rate,
                        r.spo2,
                        1 if r.flagged else 0,
                        r.timestamp,
                        r.condition,
                    ),
                )
                count += 1
            conn.commit()
        return count


def _mask(user_id: str) -> str:
    """Keep identifiers out of logs: 'ana@example.com' -> 'a***@example.com'."""
    name, sep, domain = user_id.partition("@")
    return f"{name[:1]}***{sep}{domain}"
