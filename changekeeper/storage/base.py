"""Abstract persisted-state store protocol."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from changekeeper.changelists.models import PersistedState


@runtime_checkable
class StateStore(Protocol):
    async def load(self) -> PersistedState | None: ...

    async def save(self, state: PersistedState) -> None: ...

    async def clear(self) -> None: ...

    async def setup(self) -> None: ...

    async def teardown(self) -> None: ...
