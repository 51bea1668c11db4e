"""Tests for the pending-move registry."""

from changekeeper.changelists.pending import PendingMoves
from tests.conftest import FakeClock


class TestPendingMoves:
    def test_register_and_live(self):
        clock = FakeClock()
        moves = PendingMoves(2.0, clock=clock)
        move = moves.register("a.txt", "feature", source_changelist_id="default")
        assert move.timestamp == clock.now
        assert moves.live() == [move]
        assert len(moves) == 1

    def test_later_move_replaces_earlier(self):
        moves = PendingMoves(2.0, clock=FakeClock())
        moves.register("a.txt", "feature")
        moves.register("a.txt", None)
        (move,) = moves.live()
        assert move.target_changelist_id is None

    def test_expiry(self):
        clock = FakeClock()
        moves = PendingMoves(2.0, clock=clock)
        moves.register("a.txt", "feature")
        clock.advance(2.0)
        assert len(moves.live()) == 1
        clock.advance(0.01)
        assert moves.live() == []
        assert len(moves) == 0

    def test_clear(self):
        moves = PendingMoves(clock=FakeClock())
        moves.register("a.txt", "feature")
        moves.clear()
        assert len(moves) == 0
