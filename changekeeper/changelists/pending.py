"""Registry of recent manual moves that refreshes must not undo."""

from __future__ import annotations

import time
from collections.abc import Callable

from changekeeper.changelists.models import PendingMove

DEFAULT_WINDOW_SECONDS = 2.0


class PendingMoves:
    def __init__(
        self,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._window = window_seconds
        self._clock = clock
        self._moves: dict[str, PendingMove] = {}

    def register(
        self,
        path: str,
        target_changelist_id: str | None,
        *,
        source_changelist_id: str | None = None,
    ) -> PendingMove:
        move = PendingMove(
            path=path,
            target_changelist_id=target_changelist_id,
            source_changelist_id=source_changelist_id,
            timestamp=self._clock(),
        )
        self._moves[path] = move
        return move

    def live(self) -> list[PendingMove]:
        """Drop expired moves and return the rest."""
        now = self._clock()
        self._moves = {
            path: move
            for path, move in self._moves.items()
            if not move.is_expired(now, self._window)
        }
        return list(self._moves.values())

    def clear(self) -> None:
        self._moves.clear()

    def __len__(self) -> int:
        return len(self._moves)
