"""Version-control collaborator protocol consumed by the reconciliation engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from changekeeper.changelists.models import Hunk
    from changekeeper.vcs.models import StatusEntry, VcsResult


@runtime_checkable
class VcsBackend(Protocol):
    """Status, untracked and diff reads raise VcsError.

    Mutating operations never raise; they report through VcsResult.
    """

    async def status(self) -> list[StatusEntry]: ...

    async def untracked_files(self) -> list[str]: ...

    async def diff(self, path: str, *, staged: bool = False) -> str: ...

    async def stage(self, path: str) -> VcsResult: ...

    async def unstage(self, path: str) -> VcsResult: ...

    async def stage_hunk(self, hunk: Hunk) -> VcsResult: ...

    async def unstage_hunk(self, hunk: Hunk) -> VcsResult: ...

    async def is_tracked(self, path: str) -> bool: ...

    async def commit(
        self, paths: list[str], message: str, *, amend: bool = False
    ) -> VcsResult: ...

    async def commit_staged(
        self, paths: list[str], message: str, *, amend: bool = False
    ) -> VcsResult: ...

    async def revert(self, paths: list[str]) -> VcsResult: ...

    async def stash(self, paths: list[str], message: str | None = None) -> VcsResult: ...
