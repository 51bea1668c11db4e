"""Lightweight event bus for partition notifications."""

from collections.abc import Callable, Coroutine
from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

from changekeeper.changelists.models import Partition

logger = structlog.get_logger()

# Event name constants
PARTITION_UPDATED = "partition.updated"
REFRESH_FAILED = "refresh.failed"
CHANGELIST_CREATED = "changelist.created"
CHANGELIST_DELETED = "changelist.deleted"


class Event(BaseModel):
    """A named notification.

    ``partition.updated`` events carry the partition that replaced the
    previous one; other events describe themselves through ``data``.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    partition: Partition | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


EventHandler = Callable[[Event], Coroutine[Any, Any, None]]


class EventBus:
    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        self._handlers.setdefault(event_name, []).append(handler)

    def unsubscribe(self, event_name: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)

    async def emit(self, event: Event) -> None:
        handlers = list(self._handlers.get(event.name, []))
        for handler in handlers:
            try:
                await handler(event)
            except Exception:
                logger.exception(
                    "event_handler_error",
                    event_name=event.name,
                    handler_name=getattr(handler, "__name__", repr(handler)),
                )
