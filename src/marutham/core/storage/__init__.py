"""Data-access facade: one interface over the local and hosted record stores."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from marutham.core.storage.models import (
    BackendError,
    ClientMetadata,
    ProfileRecord,
    RecordValidationError,
    VisitRecord,
    VitalsReading,
)

if TYPE_CHECKING:
    from marutham.core.config.settings import Settings
    from marutham.core.storage.database import DashboardDatabase

logger = logging.getLogger(__name__)

__all__ = [
    "BackendError",
    "RecordStore",
    "RecordValidationError",
    "create_store",
]


@runtime_checkable
class RecordStore(Protocol):
    """Uniform operations over the profile, visit and vitals collections.

    Views and tools call these without knowing whether rows live in the
    local SQLite file or in the hosted database. Every method raises
    ``BackendError`` with the remote message on failure; nothing retries.
    """

    backend_name: str

    async def upsert_profile(self, user_id: str, fields: dict[str, Any]) -> ProfileRecord:
        """Append a new profile version stamped with the current time."""
        ...

    async def current_profile(self, user_id: str) -> ProfileRecord | None:
        """The newest profile row for the user."""
        ...

    async def list_profile_history(self, user_id: str) -> list[ProfileRecord]:
        """Every profile version, newest first."""
        ...

    async def list_visits(self, user_id: str) -> list[VisitRecord]:
        """Every visit, newest first."""
        ...

    async def record_visit(self, user_id: str, client: ClientMetadata) -> VisitRecord:
        """Insert one visit row."""
        ...

    async def list_vitals(self) -> list[VitalsReading]:
        """Device readings."""
        ...


def create_store(settings: Settings, database: DashboardDatabase | None = None) -> RecordStore:
    """Build the record store selected by ``settings.store_backend``.

    Args:
        settings: Application settings.
        database: Initialized local database, required for the sqlite backend.

    Raises:
        ConfigurationError: If the hosted backend is selected without a URL or key.
    """
    if settings.store_backend == "rest":
        from marutham.core.errors import ConfigurationError
        from marutham.core.storage.rest import RestRecordStore

        if not settings.database_url or not settings.database_key:
            raise ConfigurationError(
                "DATABASE_URL and DATABASE_KEY must be set to use the hosted record store"
            )
        logger.info("Using hosted record store at %s", settings.database_url)
        return RestRecordStore(
            settings.database_url,
            settings.database_key,
            timeout=settings.http_timeout_seconds,
        )

    from marutham.core.storage.encryption import FieldEncryptor
    from marutham.core.storage.repository import SQLiteRecordStore

    if database is None:
        raise ValueError("The sqlite record store needs an initialized DashboardDatabase")
    encryptor = FieldEncryptor(settings.encryption_key) if settings.encryption_key else None
    if encryptor is None:
        logger.info(
            "No ENCRYPTION_KEY configured; intake notes are stored unencrypted. "
            "Set ENCRYPTION_KEY to encrypt them at rest."
        )
    return SQLiteRecordStore(database, encryptor)
