"""Record store backed by a hosted Postgres REST API (PostgREST / Supabase).

Talks to ``{database_url}/rest/v1/<table>`` with the project API key. Every
row that comes back goes through the record validators, so a malformed row
fails loudly here instead of somewhere in a view.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import httpx

from marutham.core.errors import provider_error_message
from marutham.core.storage.models import (
    BackendError,
    ClientMetadata,
    ProfileRecord,
    RecordValidationError,
    VisitRecord,
    VitalsReading,
    validate_profile_fields,
)
from marutham.core.storage.repository import utc_now_iso

logger = logging.getLogger(__name__)

# Column names of the hosted user_profiles table.
PROFILE_COLUMNS = {
    "title": "job_title",
    "description": "job_description",
    "category": "gender",
    "notes": "address",
}


class RestRecordStore:
    """Async client for the hosted ``user_profiles`` / ``user_visits`` / ``device_vitals`` tables."""

    backend_name = "rest"

    def __init__(
        self,
        database_url: str,
        api_key: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        self._base = database_url.rstrip("/") + "/rest/v1"
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._clock = clock

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    async def upsert_profile(self, user_id: str, fields: dict[str, Any]) -> ProfileRecord:
        clean = validate_profile_fields(fields)
        row = {"user_id": user_id, "updated_at": self._clock()}
        row.update({PROFILE_COLUMNS[key]: value for key, value in clean.items()})
        created = await self._request("POST", "user_profiles", json=row)
        if isinstance(created, list) and created:
            return self._to_profile(created[0])
        return ProfileRecord(user_id=user_id, updated_at=row["updated_at"], **clean)

    async def list_profile_history(self, user_id: str) -> list[ProfileRecord]:
        rows = await self._request(
            "GET",
            "user_profiles",
            params={"select": "*", "user_id": f"eq.{user_id}", "order": "updated_at.desc"},
        )
        return [self._to_profile(row) for row in _as_rows(rows)]

    async def current_profile(self, user_id: str) -> ProfileRecord | None:
        rows = await self._request(
            "GET",
            "user_profiles",
            params={
                "select": "*",
                "user_id": f"eq.{user_id}",
                "order": "updated_at.desc",
                "limit": "1",
            },
        )
        rows = _as_rows(rows)
        return self._to_profile(rows[0]) if rows else None

    @staticmethod
    def _to_profile(row: Any) -> ProfileRecord:
        if not isinstance(row, dict):
            raise RecordValidationError("Profile row must be an object")
        data = dict(row)
        for field_name, column in PROFILE_COLUMNS.items():
            if field_name not in data and column in data:
                data[field_name] = data.pop(column)
        return ProfileRecord.from_dict(data)

    # ------------------------------------------------------------------
    # Visits
    # ------------------------------------------------------------------

    async def record_visit(self, user_id: str, client: ClientMetadata) -> VisitRecord:
        row = {
            "user_id": user_id,
            "visit_time": self._clock(),
            "visit_data": {
                "browser": client.user_agent,
                "device": client.device,
                "location": client.url,
            },
        }
        created = await self._request("POST", "user_visits", json=row)
        if isinstance(created, list) and created:
            return VisitRecord.from_dict(created[0])
        return VisitRecord(user_id=user_id, visit_time=row["visit_time"], client=client)

    async def list_visits(self, user_id: str) -> list[VisitRecord]:
        rows = await self._request(
            "GET",
            "user_visits",
            params={"select": "*", "user_id": f"eq.{user_id}", "order": "visit_time.desc"},
        )
        return [VisitRecord.from_dict(row) for row in _as_rows(rows)]

    # ------------------------------------------------------------------
    # Device vitals
    # ------------------------------------------------------------------

    async def list_vitals(self) -> list[VitalsReading]:
        rows = await self._request(
            "GET", "device_vitals", params={"select": "*", "order": "timestamp.desc"}
        )
        return [VitalsReading.from_dict(row) for row in _as_rows(rows)]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
    ) -> Any:
        url = f"{self._base}/{table}"
        try:
            response = await self._client.request(
                method, url, params=params, json=json, headers=self._headers
            )
        except httpx.HTTPError as exc:
            logger.warning("Record store request failed: %s %s (%s)", method, table, exc)
            raise BackendError(f"Network error: {exc}") from exc

        if response.status_code >= 400:
            message = provider_error_message(response)
            logger.warning(
                "Record store returned %d for %s %s: %s",
                response.status_code, method, table, message,
            )
            raise BackendError(message, status_code=response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise BackendError(f"Invalid JSON from record store: {exc}") from exc


def _as_rows(payload: Any) -> list[Any]:
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise RecordValidationError(
            f"Expected a list of rows, got {type(payload).__name__}"
        )
    return payload
