"""In-memory state store; nothing survives a restart."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from changekeeper.changelists.models import PersistedState


class MemoryStateStore:
    def __init__(self) -> None:
        self._state: PersistedState | None = None
        self.save_count = 0

    async def load(self) -> PersistedState | None:
        if self._state is None:
            return None
        return self._state.model_copy(deep=True)

    async def save(self, state: PersistedState) -> None:
        self._state = state.model_copy(deep=True)
        self.save_count += 1

    async def clear(self) -> None:
        self._state = None

    async def setup(self) -> None:
        pass

    async def teardown(self) -> None:
        pass
