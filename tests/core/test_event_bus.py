"""Tests for the event bus."""

from __future__ import annotations

import pytest

from changekeeper.changelists.models import Partition
from changekeeper.core.events import PARTITION_UPDATED, REFRESH_FAILED, Event, EventBus


@pytest.fixture
def bus():
    return EventBus()


class TestEventBus:
    async def test_emit_calls_subscribed_handler(self, bus):
        received = []

        async def handler(event):
            received.append(event)

        bus.subscribe(REFRESH_FAILED, handler)
        await bus.emit(Event(name=REFRESH_FAILED, data={"error": "boom"}))

        assert len(received) == 1
        assert received[0].data["error"] == "boom"
        assert received[0].partition is None

    async def test_emit_ignores_other_events(self, bus):
        received = []

        async def handler(event):
            received.append(event)

        bus.subscribe("other", handler)
        await bus.emit(Event(name=PARTITION_UPDATED))
        assert received == []

    async def test_handler_error_does_not_stop_others(self, bus):
        calls = []

        async def broken(event):
            raise RuntimeError("boom")

        async def ok(event):
            calls.append("ok")

        bus.subscribe(PARTITION_UPDATED, broken)
        bus.subscribe(PARTITION_UPDATED, ok)
        await bus.emit(Event(name=PARTITION_UPDATED))
        assert calls == ["ok"]

    async def test_unsubscribe(self, bus):
        calls = []

        async def handler(event):
            calls.append(event)

        bus.subscribe(PARTITION_UPDATED, handler)
        bus.unsubscribe(PARTITION_UPDATED, handler)
        bus.unsubscribe(PARTITION_UPDATED, handler)
        await bus.emit(Event(name=PARTITION_UPDATED))
        assert calls == []

    def test_event_is_frozen(self):
        event = Event(name=PARTITION_UPDATED)
        with pytest.raises(ValueError):
            event.name = "x"

    async def test_partition_event_carries_partition(self, bus):
        received = []

        async def handler(event):
            received.append(event)

        partition = Partition(active_changelist_id="default")
        bus.subscribe(PARTITION_UPDATED, handler)
        await bus.emit(Event(name=PARTITION_UPDATED, partition=partition))

        assert received[0].partition is partition
        assert received[0].data == {}

    async def test_handler_may_unsubscribe_while_emitting(self, bus):
        calls = []

        async def once(event):
            calls.append("once")
            bus.unsubscribe(PARTITION_UPDATED, once)

        async def always(event):
            calls.append("always")

        bus.subscribe(PARTITION_UPDATED, once)
        bus.subscribe(PARTITION_UPDATED, always)
        await bus.emit(Event(name=PARTITION_UPDATED))
        await bus.emit(Event(name=PARTITION_UPDATED))
        assert calls == ["once", "always", "always"]
