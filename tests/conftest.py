"""Shared fixtures and an in-memory VCS backend for testing."""

from __future__ import annotations

import os

import pytest

from changekeeper.changelists.manager import ChangelistManager
from changekeeper.changelists.models import Hunk
from changekeeper.core.config import ChangekeeperConfig
from changekeeper.core.events import EventBus
from changekeeper.exceptions import VcsError
from changekeeper.storage.memory import MemoryStateStore
from changekeeper.vcs.models import FileStatus, StatusEntry, VcsResult


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Prevent .env file and shell env from leaking into tests."""
    monkeypatch.setitem(ChangekeeperConfig.model_config, "env_file", None)
    for key in list(os.environ):
        if key.startswith("CHANGEKEEPER_"):
            monkeypatch.delenv(key, raising=False)


def make_diff(*ranges: tuple[int, int, int, int]) -> str:
    """Build unified diff text with one hunk per (old_start, old_lines, new_start, new_lines)."""
    lines = ["diff --git a/f b/f", "--- a/f", "+++ b/f"]
    for old_start, old_lines, new_start, new_lines in ranges:
        lines.append(f"@@ -{old_start},{old_lines} +{new_start},{new_lines} @@")
        lines.append(" context")
        lines.append("-old")
        lines.append("+new")
    return "\n".join(lines) + "\n"


class FakeVcs:
    """In-memory VCS backend; tests edit its working tree directly."""

    def __init__(self) -> None:
        self.entries: dict[str, StatusEntry] = {}
        self.untracked: list[str] = []
        self.diffs: dict[str, str] = {}
        self.staged_diffs: dict[str, str] = {}
        self.tracked: set[str] = set()
        self.fail_reads = False
        self.result = VcsResult(success=True, message="ok")
        self.calls: list[tuple] = []

    def modify(
        self,
        path: str,
        *ranges: tuple[int, int, int, int],
        status: FileStatus = "modified",
        staged: bool = False,
    ) -> None:
        if path in self.untracked:
            self.untracked.remove(path)
        self.entries[path] = StatusEntry(path=path, status=status, is_staged=staged)
        self.tracked.add(path)
        target = self.staged_diffs if staged else self.diffs
        target[path] = make_diff(*ranges)

    def add_untracked(self, path: str) -> None:
        self.untracked.append(path)

    def remove(self, path: str) -> None:
        self.entries.pop(path, None)
        self.diffs.pop(path, None)
        self.staged_diffs.pop(path, None)
        if path in self.untracked:
            self.untracked.remove(path)

    async def status(self) -> list[StatusEntry]:
        if self.fail_reads:
            raise VcsError("status failed")
        return list(self.entries.values())

    async def untracked_files(self) -> list[str]:
        if self.fail_reads:
            raise VcsError("ls-files failed")
        return list(self.untracked)

    async def diff(self, path: str, *, staged: bool = False) -> str:
        if self.fail_reads:
            raise VcsError("diff failed")
        return (self.staged_diffs if staged else self.diffs).get(path, "")

    async def stage(self, path: str) -> VcsResult:
        self.calls.append(("stage", path))
        return self.result

    async def unstage(self, path: str) -> VcsResult:
        self.calls.append(("unstage", path))
        return self.result

    async def stage_hunk(self, hunk: Hunk) -> VcsResult:
        self.calls.append(("stage_hunk", hunk.id))
        return self.result

    async def unstage_hunk(self, hunk: Hunk) -> VcsResult:
        self.calls.append(("unstage_hunk", hunk.id))
        return self.result

    async def is_tracked(self, path: str) -> bool:
        return path in self.tracked

    async def commit(
        self, paths: list[str], message: str, *, amend: bool = False
    ) -> VcsResult:
        self.calls.append(("commit", tuple(paths), message, amend))
        return self.result

    async def commit_staged(
        self, paths: list[str], message: str, *, amend: bool = False
    ) -> VcsResult:
        self.calls.append(("commit_staged", tuple(paths), message, amend))
        return self.result

    async def revert(self, paths: list[str]) -> VcsResult:
        self.calls.append(("revert", tuple(paths)))
        return self.result

    async def stash(self, paths: list[str], message: str | None = None) -> VcsResult:
        self.calls.append(("stash", tuple(paths), message))
        return self.result


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_vcs():
    return FakeVcs()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def state_store():
    return MemoryStateStore()


@pytest.fixture
def manager(fake_vcs, state_store, event_bus, clock):
    return ChangelistManager(
        fake_vcs,
        state_store,
        event_bus=event_bus,
        refresh_debounce_seconds=0,
        settle_delay_seconds=0,
        clock=clock,
    )


@pytest.fixture
def config(tmp_path):
    return ChangekeeperConfig(repo_root=tmp_path, storage_backend="memory")
