"""Fixed-interval poller with a stale-response guard.

Fetches are never de-duplicated and never aborted: if a tick fires while
the previous fetch is still running, both run to completion. Each fetch
takes a sequence number and its result is applied only if no later fetch
has been applied already, so a slow early response cannot overwrite a
newer one.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import IntEnum
from typing import Any, Generic, TypeVar

from marutham.dashboard.views.state import ViewState

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RefreshInterval(IntEnum):
    """Refresh intervals offered by the interval control, in milliseconds."""

    ONE_SECOND = 1000
    FIVE_SECONDS = 5000
    TEN_SECONDS = 10000
    THIRTY_SECONDS = 30000

    @classmethod
    def parse(cls, value: Any) -> RefreshInterval:
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            allowed = ", ".join(str(i.value) for i in cls)
            raise ValueError(f"Refresh interval must be one of {allowed} ms, got {value!r}") from None

    @property
    def label(self) -> str:
        seconds = self.value // 1000
        return f"{seconds} second" if seconds == 1 else f"{seconds} seconds"


class Poller(Generic[T]):
    """Runs ``fetch`` now and then every ``interval_ms`` until stopped.

    ``sleep`` is injectable so tests can observe the timer without waiting.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[T]],
        *,
        interval_ms: int = RefreshInterval.FIVE_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        name: str = "poller",
    ) -> None:
        self._fetch = fetch
        self._interval = RefreshInterval.parse(interval_ms)
        self._sleep = sleep
        self.name = name
        self.state: ViewState[T] = ViewState()
        self._issued_seq = 0
        self._applied_seq = 0
        self._timer: asyncio.Task | None = None
        self._inflight: set[asyncio.Task] = set()

    @property
    def interval_ms(self) -> int:
        return int(self._interval)

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def timer(self) -> asyncio.Task | None:
        return self._timer

    def start(self) -> None:
        """Fetch immediately and start the timer. No-op if already running."""
        if self.running:
            return
        self.refresh()
        self._timer = asyncio.create_task(self._tick_loop(), name=f"{self.name}-timer")

    def stop(self) -> None:
        """Clear the timer. Fetches already dispatched still complete."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def set_interval(self, interval_ms: int) -> None:
        """Switch to a new interval, replacing the running timer."""
        interval = RefreshInterval.parse(interval_ms)
        was_running = self.running
        self.stop()
        self._interval = interval
        logger.debug("%s interval set to %d ms", self.name, interval)
        if was_running:
            self._timer = asyncio.create_task(self._tick_loop(), name=f"{self.name}-timer")

    def refresh(self) -> asyncio.Task:
        """Dispatch a fetch now (manual refresh, retry, or timer tick)."""
        self._issued_seq += 1
        self.state.begin_loading()
        task = asyncio.create_task(self._run_fetch(self._issued_seq))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for every dispatched fetch to finish."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight))

    async def _tick_loop(self) -> None:
        while True:
            await self._sleep(self._interval / 1000)
            self.refresh()

    async def _run_fetch(self, seq: int) -> None:
        try:
            data = await self._fetch()
        except Exception as exc:
            logger.warning("%s fetch #%d failed: %s", self.name, seq, exc)
            if self._accept(seq):
                self.state.fail(str(exc) or type(exc).__name__)
            return
        if self._accept(seq):
            self.state.succeed(data)
        else:
            logger.debug("%s discarded stale response #%d", self.name, seq)

    def _accept(self, seq: int) -> bool:
        if seq <= self._applied_seq:
            return False
        self._applied_seq = seq
        return True
