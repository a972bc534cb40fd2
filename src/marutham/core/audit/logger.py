"""Audit logger: PHI-free trail of summary generations and email sends.

Records which action ran, when, whether patient data left the server for
an external LLM, and how it ended. Inputs are stored only as a SHA-256
hash of their canonical JSON.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from marutham.core.storage.database import DashboardDatabase

logger = logging.getLogger(__name__)


def _hash_input(data: Any) -> str:
    """SHA-256 hash of canonical JSON, or empty string if not serializable."""
    try:
        canonical = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode()).hexdigest()
    except (TypeError, ValueError):
        return ""


@dataclass
class AuditEvent:
    """A single audit log entry."""

    action: str                          # 'summary_generated' | 'email_sent' | 'profile_saved'
    tool_name: str = ""
    tool_input_hash: str = ""
    llm_provider: str | None = None
    llm_disclosed: bool = False          # True if patient data was sent to an external LLM
    duration_ms: float | None = None
    status: str = "success"              # 'success' | 'failure'
    error_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class AuditLogger:
    """Records audit events to the ``audit_log`` SQLite table.

    Writes are committed immediately. A failed write is logged and
    swallowed: the audited operation itself must not fail because of it.

    Usage::

        audit = AuditLogger(database)
        audit.log_summary(llm_provider="gemini", user_id="ana@example.com")
    """

    def __init__(self, database: DashboardDatabase) -> None:
        self._db = database

    # ---------------------------------------------------------------
    # Write
    # ---------------------------------------------------------------

    def log_event(self, event: AuditEvent) -> str:
        """Insert an audit event and return its id ('' if the write failed)."""
        event_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc).isoformat()
        metadata_json = (
            json.dumps(event.metadata, separators=(",", ":"))
            if event.metadata
            else None
        )

        try:
            conn = self._db.connection
            conn.execute(
                """INSERT INTO audit_log
                   (id, timestamp, action, tool_name, tool_input_hash,
                    llm_provider, llm_disclosed, duration_ms, status,
                    error_type, metadata_json)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    event_id,
                    now,
                    event.action,
                    event.tool_name or None,
                    event.tool_input_hash or None,
                    event.llm_provider,
                    1 if event.llm_disclosed else 0,
                    event.duration_ms,
                    event.status,
                    event.error_type,
                    metadata_json,
                ),
            )
            conn.commit()
        except sqlite3.Error:
            logger.exception("Failed to write audit event %s, event lost", event.action)
            return ""

        return event_id

    def log_summary(
        self,
        *,
        llm_provider: str,
        user_id: str,
        tool_name: str = "generate_health_summary",
        duration_ms: float | None = None,
        status: str = "success",
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Log a summary generation. Patient data is always disclosed to the LLM."""
        return self.log_event(AuditEvent(
            action="summary_generated",
            tool_name=tool_name,
            tool_input_hash=_hash_input({"user_id": user_id}),
            llm_provider=llm_provider,
            llm_disclosed=llm_provider != "mock",
            duration_ms=duration_ms,
            status=status,
            error_type=error_type,
            metadata=metadata or {},
        ))

    def log_email(
        self,
        *,
        recipient: str,
        status: str = "success",
        error_type: str | None = None,
        message_id: str | None = None,
    ) -> str:
        """Log a mail relay call. The recipient is hashed."""
        metadata = {"message_id": message_id} if message_id else {}
        return self.log_event(AuditEvent(
            action="email_sent",
            tool_name="send_email",
            tool_input_hash=_hash_input({"to": recipient}),
            status=status,
            error_type=error_type,
            metadata=metadata,
        ))

    def log_profile_saved(self, *, user_id: str, backend: str) -> str:
        return self.log_event(AuditEvent(
            action="profile_saved",
            tool_name="save_profile",
            tool_input_hash=_hash_input({"user_id": user_id}),
            metadata={"backend": backend},
        ))

    # ---------------------------------------------------------------
    # Read
    # ---------------------------------------------------------------

    def get_events(
        self,
        *,
        action: str | None = None,
        since: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Query audit events, newest first."""
        conditions: list[str] = []
        params: list[Any] = []

        if action:
            conditions.append("action = ?")
            params.append(action)
        if since:
            conditions.append("timestamp >= ?")
            params.append(since)

        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        query = f"SELECT * FROM audit_log{where} ORDER BY timestamp DESC LIMIT ?"
        params.append(limit)

        rows = self._db.connection.execute(query, params).fetchall()
        return [dict(row) for row in rows]

    def count_events(self, *, since: str | None = None) -> int:
        """Count total audit events, optionally since a timestamp."""
        if since:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM audit_log WHERE timestamp >= ?", (since,)
            ).fetchone()
        else:
            row = self._db.connection.execute("SELECT COUNT(*) FROM audit_log").fetchone()
        return row[0]

    def count_disclosures(self, *, since: str | None = None) -> int:
        """Count events where patient data was sent to an external LLM."""
        if since:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM audit_log WHERE llm_disclosed = 1 AND timestamp >= ?",
                (since,),
            ).fetchone()
        else:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM audit_log WHERE llm_disclosed = 1"
            ).fetchone()
        return row[0]
