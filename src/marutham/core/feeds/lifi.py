"""Client for the LiFi device feed: the sensor proxy behind the vitals panel."""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from marutham.core.errors import NetworkError, UpstreamError
from marutham.core.storage.models import RecordValidationError, VitalsReading

logger = logging.getLogger(__name__)


def parse_feed_rows(rows: Any, *, fetched_at: int | None = None) -> list[VitalsReading]:
    """Validate raw feed items into readings.

    The feed does not number its items or stamp them; items without an
    ``id`` get their 1-based position and items without a ``timestamp``
    get the fetch time.

    Raises:
        RecordValidationError: If the payload is not a list or an item is malformed.
    """
    if not isinstance(rows, list):
        raise RecordValidationError(f"Device feed must return a list, got {type(rows).__name__}")
    stamp = int(time.time()) if fetched_at is None else fetched_at
    readings = []
    for position, row in enumerate(rows, start=1):
        if not isinstance(row, dict):
            raise RecordValidationError(f"Device feed item {position} is not an object")
        item = dict(row)
        item.setdefault("id", position)
        item.setdefault("timestamp", stamp)
        readings.append(VitalsReading.from_dict(item))
    return readings


class DeviceFeedClient:
    """Fetches the upstream feed URL and hands back its JSON untouched."""

    def __init__(
        self,
        url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
    ) -> None:
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_raw(self) -> Any:
        """Return the upstream JSON body verbatim.

        Raises:
            UpstreamError: Non-2xx status or a body that is not JSON.
            NetworkError: The feed could not be reached.
        """
        try:
            response = await self._client.get(self.url)
        except httpx.HTTPError as exc:
            logger.warning("Device feed unreachable: %s", exc)
            raise NetworkError(f"Failed to reach device feed: {exc}") from exc

        if response.status_code >= 400:
            logger.warning("Device feed returned %d", response.status_code)
            raise UpstreamError(
                "Failed to fetch data from external API",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(f"Device feed returned invalid JSON: {exc}") from exc

    async def fetch_readings(self) -> list[VitalsReading]:
        """Fetch and validate the feed."""
        return parse_feed_rows(await self.fetch_raw())
