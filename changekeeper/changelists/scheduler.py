"""Debounced, single-flight scheduling of reconciliation passes."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Coroutine
from enum import Enum
from typing import Any

import structlog

logger = structlog.get_logger()

DEFAULT_DEBOUNCE_SECONDS = 0.5

RefreshRunner = Callable[[], Coroutine[Any, Any, None]]


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class RefreshScheduler:
    """At most one pass in flight; passes shortly after a mutation are delayed.

    A request that arrives while a pass is running is dropped, since the
    running pass reads the latest VCS state anyway. A request inside the
    debounce window of the last mutation is re-issued once the window
    elapses, and re-checked then, so a burst of mutations keeps pushing it out.
    """

    def __init__(
        self,
        run: RefreshRunner,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._run = run
        self._debounce = debounce_seconds
        self._clock = clock
        self._state = SchedulerState.IDLE
        self._last_mutation: float | None = None
        self._delayed: set[asyncio.Task[bool]] = set()

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def pending_requests(self) -> int:
        return len(self._delayed)

    def note_mutation(self) -> None:
        self._last_mutation = self._clock()

    async def request(self, *, delay: float = 0.0) -> bool:
        """Run a pass now if allowed. Returns True only if this call ran one."""
        if delay > 0:
            self._schedule(delay)
            return False

        if self._state is SchedulerState.RUNNING:
            logger.debug("refresh_dropped_already_running")
            return False

        remaining = self._debounce_remaining()
        if remaining > 0:
            logger.debug("refresh_deferred", delay=round(remaining, 3))
            self._schedule(remaining)
            return False

        self._state = SchedulerState.RUNNING
        try:
            await self._run()
        finally:
            self._state = SchedulerState.IDLE
        return True

    async def drain(self) -> None:
        """Wait until no delayed request is outstanding."""
        while self._delayed:
            await asyncio.gather(*list(self._delayed), return_exceptions=True)

    async def shutdown(self) -> None:
        for task in list(self._delayed):
            task.cancel()
        await asyncio.gather(*list(self._delayed), return_exceptions=True)
        self._delayed.clear()

    def _debounce_remaining(self) -> float:
        if self._last_mutation is None:
            return 0.0
        return self._debounce - (self._clock() - self._last_mutation)

    def _schedule(self, delay: float) -> None:
        task = asyncio.create_task(self._fire_later(delay))
        self._delayed.add(task)
        task.add_done_callback(self._on_delayed_done)

    async def _fire_later(self, delay: float) -> bool:
        await asyncio.sleep(delay)
        return await self.request()

    def _on_delayed_done(self, task: asyncio.Task[bool]) -> None:
        self._delayed.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("delayed_refresh_failed", error=str(exc))
