"""Tests for RefreshScheduler single-flight and debounce behavior."""

import asyncio

from changekeeper.changelists.scheduler import RefreshScheduler, SchedulerState
from tests.conftest import FakeClock


class Counter:
    def __init__(self) -> None:
        self.runs = 0

    async def __call__(self) -> None:
        self.runs += 1


class TestRequest:
    async def test_idle_request_runs_immediately(self):
        run = Counter()
        scheduler = RefreshScheduler(run)
        assert await scheduler.request() is True
        assert run.runs == 1
        assert scheduler.state is SchedulerState.IDLE

    async def test_request_while_running_is_dropped(self):
        gate = asyncio.Event()
        runs = []

        async def run():
            runs.append(1)
            await gate.wait()

        scheduler = RefreshScheduler(run, debounce_seconds=0)
        first = asyncio.create_task(scheduler.request())
        await asyncio.sleep(0)
        assert scheduler.state is SchedulerState.RUNNING

        assert await scheduler.request() is False
        gate.set()
        assert await first is True
        assert runs == [1]
        assert scheduler.state is SchedulerState.IDLE

    async def test_state_resets_after_failed_pass(self):
        async def run():
            raise RuntimeError("boom")

        scheduler = RefreshScheduler(run)
        try:
            await scheduler.request()
        except RuntimeError:
            pass
        assert scheduler.state is SchedulerState.IDLE


class TestDebounce:
    async def test_request_inside_window_is_deferred(self):
        clock = FakeClock()
        run = Counter()
        scheduler = RefreshScheduler(run, debounce_seconds=0.5, clock=clock)
        scheduler.note_mutation()

        assert await scheduler.request() is False
        assert run.runs == 0
        assert scheduler.pending_requests == 1
        await scheduler.shutdown()
        assert scheduler.pending_requests == 0

    async def test_request_after_window_runs(self):
        clock = FakeClock()
        run = Counter()
        scheduler = RefreshScheduler(run, debounce_seconds=0.5, clock=clock)
        scheduler.note_mutation()
        clock.advance(0.6)

        assert await scheduler.request() is True
        assert run.runs == 1

    async def test_deferred_request_eventually_runs(self):
        run = Counter()
        scheduler = RefreshScheduler(run, debounce_seconds=0.02)
        scheduler.note_mutation()

        assert await scheduler.request() is False
        await scheduler.drain()
        assert run.runs == 1
        assert scheduler.pending_requests == 0

    async def test_delayed_request(self):
        run = Counter()
        scheduler = RefreshScheduler(run, debounce_seconds=0)
        assert await scheduler.request(delay=0.01) is False
        assert run.runs == 0
        await scheduler.drain()
        assert run.runs == 1

    async def test_shutdown_cancels_delayed(self):
        run = Counter()
        scheduler = RefreshScheduler(run, debounce_seconds=0)
        await scheduler.request(delay=10)
        await scheduler.shutdown()
        assert run.runs == 0
        assert scheduler.pending_requests == 0
