"""Tests for the view-state machine and the fixed-interval poller."""

from __future__ import annotations

import asyncio

import pytest

from marutham.dashboard.views.poller import Poller, RefreshInterval
from marutham.dashboard.views.state import ViewState, ViewStatus


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


class _ManualSleep:
    """Stands in for asyncio.sleep: records each delay and waits for tick()."""

    def __init__(self) -> None:
        self.delays: list[float] = []
        self._waiters: list[asyncio.Future] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        await waiter

    def tick(self) -> None:
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)


def _live_timers(name: str = "vitals") -> int:
    return sum(1 for t in asyncio.all_tasks() if t.get_name() == f"{name}-timer" and not t.done())


class TestViewState:
    def test_starts_loading(self):
        assert ViewState().status is ViewStatus.LOADING

    def test_failure_keeps_previous_data(self):
        state: ViewState[list[int]] = ViewState()
        state.succeed([1, 2])
        state.begin_loading()
        assert state.data == [1, 2]
        state.fail("Failed to fetch LiFi data")
        assert state.status is ViewStatus.FAILED
        assert state.data == [1, 2]
        assert state.can_retry

    def test_success_clears_error(self):
        state: ViewState[int] = ViewState()
        state.fail("boom")
        state.succeed(1)
        assert state.error is None
        assert not state.can_retry


class TestRefreshInterval:
    def test_default_is_five_seconds(self):
        async def _check():
            return Poller(lambda: asyncio.sleep(0)).interval_ms

        assert _run(_check()) == 5000

    @pytest.mark.parametrize("value", [0, 2000, "fast", None])
    def test_rejects_unlisted_values(self, value):
        with pytest.raises(ValueError, match="must be one of"):
            RefreshInterval.parse(value)

    def test_labels(self):
        assert RefreshInterval.ONE_SECOND.label == "1 second"
        assert RefreshInterval.THIRTY_SECONDS.label == "30 seconds"


class TestPoller:
    def test_start_fetches_immediately_then_on_each_tick(self):
        async def _check():
            sleep = _ManualSleep()
            calls = []

            async def fetch():
                calls.append(len(calls))
                return len(calls)

            poller = Poller(fetch, sleep=sleep, name="vitals")
            poller.start()
            await _settle()
            assert calls == [0]
            assert poller.state.status is ViewStatus.READY

            sleep.tick()
            await _settle()
            assert len(calls) == 2
            assert sleep.delays == [5.0, 5.0]
            poller.stop()
            await _settle()

        _run(_check())

    def test_changing_interval_replaces_the_timer(self):
        async def _check():
            sleep = _ManualSleep()

            async def fetch():
                return []

            poller = Poller(fetch, sleep=sleep, name="vitals")
            poller.start()
            await _settle()
            old_timer = poller.timer

            poller.set_interval(10000)
            await _settle()
            assert old_timer.cancelled()
            assert _live_timers() == 1
            assert poller.interval_ms == 10000

            sleep.tick()
            await _settle()
            assert sleep.delays == [5.0, 10.0, 10.0]
            poller.stop()
            await _settle()
            assert _live_timers() == 0

        _run(_check())

    def test_set_interval_while_stopped_does_not_start(self):
        async def _check():
            poller = Poller(lambda: asyncio.sleep(0), sleep=_ManualSleep(), name="vitals")
            poller.set_interval(1000)
            assert not poller.running

        _run(_check())

    def test_stale_response_is_discarded(self):
        async def _check():
            gates = [asyncio.Event(), asyncio.Event()]
            answers = ["older", "newer"]
            issued = []

            async def fetch():
                index = len(issued)
                issued.append(index)
                await gates[index].wait()
                return answers[index]

            poller = Poller(fetch, sleep=_ManualSleep())
            poller.refresh()
            poller.refresh()
            await _settle()

            gates[1].set()
            await _settle()
            assert poller.state.data == "newer"

            gates[0].set()
            await poller.wait_idle()
            assert poller.state.data == "newer"
            assert poller.state.status is ViewStatus.READY

        _run(_check())

    def test_failed_fetch_keeps_data_and_allows_retry(self):
        async def _check():
            outcomes = iter([["reading"], RuntimeError("Failed to fetch LiFi data"), ["reading", "more"]])

            async def fetch():
                outcome = next(outcomes)
                if isinstance(outcome, Exception):
                    raise outcome
                return outcome

            poller = Poller(fetch, sleep=_ManualSleep())
            await poller.refresh()
            await poller.refresh()
            assert poller.state.status is ViewStatus.FAILED
            assert poller.state.error == "Failed to fetch LiFi data"
            assert poller.state.data == ["reading"]
            assert poller.state.can_retry

            await poller.refresh()
            assert poller.state.status is ViewStatus.READY
            assert poller.state.data == ["reading", "more"]

        _run(_check())

    def test_stop_does_not_abort_inflight_fetch(self):
        async def _check():
            gate = asyncio.Event()

            async def fetch():
                await gate.wait()
                return "done"

            poller = Poller(fetch, sleep=_ManualSleep())
            poller.start()
            await _settle()
            poller.stop()
            assert not poller.running
            gate.set()
            await poller.wait_idle()
            assert poller.state.data == "done"

        _run(_check())
