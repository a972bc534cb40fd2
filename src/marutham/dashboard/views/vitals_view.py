"""Device vitals panel: polls the LiFi feed on the selected interval."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from marutham.core.storage.models import VitalsReading
from marutham.dashboard.views.poller import Poller, RefreshInterval

if TYPE_CHECKING:
    from marutham.core.feeds.lifi import DeviceFeedClient
    from marutham.core.storage.repository import SQLiteRecordStore

logger = logging.getLogger(__name__)


class VitalsPanel:
    """Sensor cards with condition and flag badges plus the interval control.

    When ``cache`` is given, each successful poll is written to the local
    store so ``/api/device-vitals`` can serve the latest readings.
    """

    def __init__(
        self,
        feed: DeviceFeedClient,
        *,
        cache: SQLiteRecordStore | None = None,
        interval_ms: int = RefreshInterval.FIVE_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.feed = feed
        self.cache = cache
        self.poller: Poller[list[VitalsReading]] = Poller(
            self._load, interval_ms=interval_ms, sleep=sleep, name="vitals"
        )

    async def _load(self) -> list[VitalsReading]:
        readings = await self.feed.fetch_readings()
        if self.cache is not None:
            await self.cache.save_vitals(readings)
        return readings

    def mount(self) -> None:
        self.poller.start()

    def unmount(self) -> None:
        self.poller.stop()

    def refresh(self) -> asyncio.Task:
        return self.poller.refresh()

    def set_refresh_interval(self, interval_ms: int) -> None:
        self.poller.set_interval(interval_ms)

    @property
    def readings(self) -> list[VitalsReading]:
        return self.poller.state.data or []

    def render(self) -> dict[str, Any]:
        state = self.poller.state
        return {
            **state.to_dict(),
            "refresh_interval_ms": self.poller.interval_ms,
            "interval_options": [
                {"value": int(i), "label": i.label} for i in RefreshInterval
            ],
            "sensors": [
                {
                    "label": f"Sensor {position}",
                    "reading": reading.to_dict(),
                    "condition_badge": "ok" if reading.is_normal else "alert",
                    "flag_badge": "alert" if reading.flagged else "ok",
                }
                for position, reading in enumerate(self.readings, start=1)
            ],
        }
