"""Changelist manager: refresh orchestration plus the user-facing mutation API."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

import structlog

from changekeeper.changelists.hunks import parse_hunks
from changekeeper.changelists.matching import DEFAULT_PROXIMITY_THRESHOLD
from changekeeper.changelists.models import (
    Changelist,
    ChangelistView,
    FileItem,
    Hunk,
    Partition,
    PersistedState,
)
from changekeeper.changelists.pending import DEFAULT_WINDOW_SECONDS, PendingMoves
from changekeeper.changelists.reconcile import Reconciler, VcsSnapshot, needs_hunks
from changekeeper.changelists.scheduler import (
    DEFAULT_DEBOUNCE_SECONDS,
    RefreshScheduler,
)
from changekeeper.changelists.store import AssignmentStore
from changekeeper.core.events import (
    CHANGELIST_CREATED,
    CHANGELIST_DELETED,
    PARTITION_UPDATED,
    REFRESH_FAILED,
    Event,
    EventBus,
)
from changekeeper.exceptions import (
    EmptyMessageError,
    NoFilesSelectedError,
    StorageError,
    VcsError,
)
from changekeeper.vcs.models import VcsResult

if TYPE_CHECKING:
    from changekeeper.storage.base import StateStore
    from changekeeper.vcs.base import VcsBackend

logger = structlog.get_logger()

_DEFAULT_SETTLE_SECONDS = 0.1


class ChangelistManager:
    def __init__(
        self,
        vcs: VcsBackend,
        state_store: StateStore,
        *,
        event_bus: EventBus | None = None,
        default_changelist_name: str = "Changes",
        proximity_threshold: int = DEFAULT_PROXIMITY_THRESHOLD,
        pending_move_window_seconds: float = DEFAULT_WINDOW_SECONDS,
        refresh_debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        settle_delay_seconds: float = _DEFAULT_SETTLE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._vcs = vcs
        self._state_store = state_store
        self._events = event_bus or EventBus()
        self._store = AssignmentStore(default_changelist_name)
        self._reconciler = Reconciler(proximity_threshold=proximity_threshold)
        self._pending = PendingMoves(pending_move_window_seconds, clock=clock)
        self._scheduler = RefreshScheduler(
            self._refresh_pass, debounce_seconds=refresh_debounce_seconds, clock=clock
        )
        self._settle_delay = settle_delay_seconds
        self._snapshot: VcsSnapshot | None = None
        self._partition = Partition()
        self._save_tasks: set[asyncio.Task[None]] = set()
        self._refresh_views()

    @property
    def partition(self) -> Partition:
        return self._partition

    @property
    def assignments(self) -> AssignmentStore:
        return self._store

    @property
    def scheduler(self) -> RefreshScheduler:
        return self._scheduler

    @property
    def events(self) -> EventBus:
        return self._events

    # --- lifecycle ---

    async def startup(self) -> None:
        await self._state_store.setup()
        state: PersistedState | None = None
        try:
            state = await self._state_store.load()
        except StorageError as e:
            logger.warning("state_load_failed", error=str(e))
        self._store.load(state)
        self._refresh_views()

    async def shutdown(self) -> None:
        await self._scheduler.shutdown()
        await self.flush()
        await self._state_store.teardown()

    async def flush(self) -> None:
        """Wait for background persistence writes to finish."""
        while self._save_tasks:
            await asyncio.gather(*list(self._save_tasks))

    # --- refresh ---

    async def refresh(self) -> bool:
        """Request a reconciliation pass through the scheduler."""
        return await self._scheduler.request()

    async def reconcile_now(self) -> bool:
        """Run a pass immediately, skipping the debounce window."""
        return await self._reconcile()

    async def _refresh_pass(self) -> None:
        await self._reconcile()

    async def _reconcile(self) -> bool:
        try:
            snapshot = await self._read_vcs()
        except VcsError as e:
            logger.warning("refresh_failed", error=str(e))
            await self._events.emit(Event(name=REFRESH_FAILED, data={"error": str(e)}))
            return False

        self._snapshot = snapshot
        self._apply(snapshot)
        self._persist_later()
        logger.info(
            "refresh_completed",
            tracked=len(snapshot.tracked),
            untracked=len(snapshot.untracked),
            unversioned=len(self._partition.unversioned),
        )
        await self._notify()
        return True

    async def _read_vcs(self) -> VcsSnapshot:
        tracked = await self._vcs.status()
        untracked = await self._vcs.untracked_files()
        hunks: dict[str, list[Hunk]] = {}
        for entry in tracked:
            if not needs_hunks(entry):
                continue
            unstaged = await self._vcs.diff(entry.path, staged=False)
            staged = await self._vcs.diff(entry.path, staged=True)
            hunks[entry.path] = parse_hunks(unstaged, entry.path) + parse_hunks(
                staged, entry.path, staged=True
            )
        return VcsSnapshot(tracked=tracked, untracked=untracked, hunks=hunks)

    def _apply(self, snapshot: VcsSnapshot) -> None:
        self._partition = self._reconciler.reconcile(
            snapshot, self._store, self._pending.live(), self._partition
        )

    def _rematerialize(self) -> None:
        """Re-run reconciliation on the last VCS read, without touching the VCS."""
        if self._snapshot is None:
            self._refresh_views()
        else:
            self._apply(self._snapshot)

    def _refresh_views(self) -> None:
        """Rebuild changelist metadata around the files already placed."""
        active = self._store.active_id
        live_ids = {c.id for c in self._store.changelists}
        existing = {view.id: view for view in self._partition.changelists}
        orphans = [
            f
            for view in self._partition.changelists
            if view.id not in live_ids
            for f in view.files
        ]

        views: list[ChangelistView] = []
        for changelist in self._store.changelists:
            files = list(existing[changelist.id].files) if changelist.id in existing else []
            if changelist.id == active and orphans:
                present = {f.id for f in files}
                files.extend(
                    f.model_copy(update={"changelist_id": active})
                    for f in orphans
                    if f.id not in present
                )
                files.sort(key=lambda f: f.name.casefold())
            views.append(ChangelistView.of(changelist, files, active))

        self._partition = Partition(
            changelists=views,
            unversioned=list(self._partition.unversioned),
            active_changelist_id=active,
        )

    async def _notify(self) -> None:
        await self._events.emit(
            Event(name=PARTITION_UPDATED, partition=self._partition)
        )

    # --- persistence ---

    def _persist_later(self) -> None:
        task = asyncio.create_task(self._save(self._store.snapshot()))
        self._save_tasks.add(task)
        task.add_done_callback(self._save_tasks.discard)

    async def _save(self, state: PersistedState) -> None:
        try:
            await self._state_store.save(state)
        except StorageError as e:
            logger.warning("state_save_failed", error=str(e))

    async def clear_state(self) -> None:
        """Forget every changelist and assignment, back to a lone default."""
        try:
            await self._state_store.clear()
        except StorageError as e:
            logger.warning("state_clear_failed", error=str(e))
        self._store.reset()
        self._reconciler.forget()
        self._pending.clear()
        self._partition = Partition()
        self._rematerialize()
        logger.info("state_cleared")
        await self._notify()

    # --- changelist mutations ---

    async def create_changelist(
        self, name: str, description: str | None = None
    ) -> Changelist:
        changelist = self._store.create_changelist(name, description)
        self._refresh_views()
        self._persist_later()
        await self._events.emit(
            Event(
                name=CHANGELIST_CREATED,
                data={"changelist_id": changelist.id, "name": changelist.name},
            )
        )
        await self._notify()
        return changelist

    async def delete_changelist(self, changelist_id: str) -> bool:
        if not self._store.delete_changelist(changelist_id):
            return False
        self._rematerialize()
        self._persist_later()
        await self._events.emit(
            Event(name=CHANGELIST_DELETED, data={"changelist_id": changelist_id})
        )
        await self._notify()
        return True

    async def rename_changelist(self, changelist_id: str, new_name: str) -> bool:
        if not self._store.rename_changelist(changelist_id, new_name):
            return False
        self._refresh_views()
        self._persist_later()
        await self._notify()
        return True

    async def set_active_changelist(self, changelist_id: str) -> bool:
        if not self._store.set_active(changelist_id):
            return False
        logger.info("active_changelist_changed", changelist_id=changelist_id)
        self._refresh_views()
        self._persist_later()
        await self._notify()
        return True

    async def set_expanded(self, changelist_id: str, expanded: bool) -> bool:
        if not self._store.set_expanded(changelist_id, expanded):
            return False
        self._refresh_views()
        self._persist_later()
        await self._notify()
        return True

    async def collapse_all(self) -> None:
        for changelist in self._store.changelists:
            self._store.set_expanded(changelist.id, False)
        self._refresh_views()
        self._persist_later()
        await self._notify()

    # --- moves ---

    async def move_file_to_changelist(
        self,
        file_id: str,
        target_id: str,
        *,
        source_changelist_id: str | None = None,
    ) -> bool:
        if not self._store.exists(target_id):
            logger.warning("move_target_unknown", changelist_id=target_id)
            return False
        source, file = self._locate(file_id, source_changelist_id)
        if file is None:
            return False
        source_id = source.id if source else None
        if source_id == target_id:
            return False

        if file.hunks:
            for hunk in file.hunks:
                if hunk.changelist_id == source_id:
                    self._store.assign_hunk(hunk.id, target_id)
        else:
            self._store.assign_file(file.path, target_id)

        self._pending.register(file.path, target_id, source_changelist_id=source_id)
        self._scheduler.note_mutation()
        self._store.set_expanded(target_id, True)
        logger.info(
            "file_moved",
            path=file.path,
            source=source_id,
            target=target_id,
            hunks=len(file.hunks),
        )
        self._rematerialize()
        self._persist_later()
        await self._notify()

        await self._scheduler.request()
        if file.hunks:
            # second pass once stage/unstage side effects have settled
            await self._scheduler.request(delay=self._settle_delay)
        return True

    async def move_file_to_unversioned(self, file_id: str) -> bool:
        source, file = self._locate(file_id)
        if file is None or source is None:
            return False

        self._store.unassign_file(file.path)
        self._pending.register(file.path, None, source_changelist_id=source.id)
        self._scheduler.note_mutation()

        if await self._vcs.is_tracked(file.path):
            result = await self._vcs.unstage(file.path)
            if not result.success:
                logger.warning(
                    "unstage_failed", path=file.path, details=result.details
                )

        logger.info("file_moved_to_unversioned", path=file.path, source=source.id)
        self._rematerialize()
        self._persist_later()
        await self._notify()

        await self._scheduler.request()
        await self._scheduler.request(delay=self._settle_delay)
        return True

    async def move_hunk_to_changelist(self, hunk_id: str, target_id: str) -> bool:
        hunk = self._partition.find_hunk(hunk_id)
        if hunk is None or not self._store.exists(target_id):
            return False
        if hunk.changelist_id == target_id:
            return False

        self._store.assign_hunk(hunk_id, target_id)
        self._scheduler.note_mutation()
        logger.info(
            "hunk_moved",
            path=hunk.file_path,
            hunk=hunk_id,
            source=hunk.changelist_id,
            target=target_id,
        )
        self._persist_later()
        if not await self._scheduler.request():
            # pass dropped or deferred; show the move on the last read meanwhile
            self._rematerialize()
            await self._notify()
        return True

    async def move_changelist_files(self, source_id: str, target_id: str) -> int:
        """Re-point the hunkless files of source at target.

        Files tracked by hunk keep their hunk placement and stay put.
        Returns the number of files actually moved.
        """
        if source_id == target_id or not self._store.exists(target_id):
            return 0
        view = self._partition.get(source_id)
        if view is None:
            return 0

        moved = [f for f in view.files if not f.hunks]
        for file in moved:
            self._store.assign_file(file.path, target_id)
        self._store.set_expanded(target_id, True)
        logger.info(
            "changelist_files_moved",
            source=source_id,
            target=target_id,
            count=len(moved),
            kept=len(view.files) - len(moved),
        )
        self._rematerialize()
        self._persist_later()
        await self._notify()
        return len(moved)

    def _locate(
        self, file_id: str, changelist_id: str | None = None
    ) -> tuple[ChangelistView | None, FileItem | None]:
        for view in self._partition.changelists:
            if changelist_id is not None and view.id != changelist_id:
                continue
            for file in view.files:
                if file.id == file_id:
                    return view, file
        if changelist_id is None:
            for file in self._partition.unversioned:
                if file.id == file_id:
                    return None, file
        return None, None

    # --- selection ---

    async def toggle_selection(self, file_id: str) -> bool:
        selected = self._selected_ids()
        if file_id in selected:
            selected.discard(file_id)
        else:
            selected.add(file_id)
        await self._apply_selection(selected)
        return file_id in selected

    async def select(self, file_ids: Iterable[str]) -> None:
        await self._apply_selection(self._selected_ids() | set(file_ids))

    async def deselect(self, file_ids: Iterable[str]) -> None:
        await self._apply_selection(self._selected_ids() - set(file_ids))

    async def select_all(self, changelist_id: str | None = None) -> None:
        if changelist_id is None:
            ids = {f.id for f in self._partition.all_files()}
        else:
            ids = {f.id for f in self.files_in_changelist(changelist_id)}
        await self._apply_selection(self._selected_ids() | ids)

    async def deselect_all(self) -> None:
        await self._apply_selection(set())

    def selected_files(self) -> list[FileItem]:
        seen: dict[str, FileItem] = {}
        for file in self._partition.all_files():
            if file.is_selected:
                seen.setdefault(file.id, file)
        return list(seen.values())

    def _selected_ids(self) -> set[str]:
        return {f.id for f in self._partition.all_files() if f.is_selected}

    async def _apply_selection(self, selected: set[str]) -> None:
        def mark(file: FileItem) -> FileItem:
            flag = file.id in selected
            if file.is_selected == flag:
                return file
            return file.model_copy(update={"is_selected": flag})

        self._partition = Partition(
            changelists=[
                view.model_copy(update={"files": [mark(f) for f in view.files]})
                for view in self._partition.changelists
            ],
            unversioned=[mark(f) for f in self._partition.unversioned],
            active_changelist_id=self._partition.active_changelist_id,
        )
        await self._notify()

    # --- queries ---

    def files_in_changelist(self, changelist_id: str) -> list[FileItem]:
        view = self._partition.get(changelist_id)
        return list(view.files) if view else []

    def hunk_at_line(self, path: str, line: int) -> Hunk | None:
        """Hunk covering a 1-based working-tree line of path, if any."""
        for file in self._partition.all_files():
            if file.path != path:
                continue
            for hunk in file.hunks:
                if hunk.contains_line(line):
                    return hunk
        return None

    # --- VCS actions on groups of files ---

    async def commit_changelist(
        self, changelist_id: str, message: str, *, amend: bool = False
    ) -> VcsResult:
        """Commit the changelist's files, and only its hunks of shared files.

        A file whose hunks are split across changelists is committed from
        the index after staging exactly this changelist's hunks.
        """
        files = self.files_in_changelist(changelist_id)
        shared = self._shared_paths(files)
        if not shared:
            return await self.commit_files([f.id for f in files], message, amend=amend)

        message = message.strip()
        if not message:
            raise EmptyMessageError("Commit message cannot be empty")
        paths = [f.path for f in files]
        for file in files:
            if file.path in shared:
                result = await self._stage_own_hunks(file.path, changelist_id)
            else:
                result = await self._vcs.stage(file.path)
            if not result.success:
                self._log_result("commit", result, paths)
                await self._scheduler.request()
                return result

        result = await self._vcs.commit_staged(paths, message, amend=amend)
        self._log_result("commit", result, paths)
        await self._scheduler.request()
        return result

    def _shared_paths(self, files: list[FileItem]) -> set[str]:
        """Paths among files whose hunks also sit in another changelist."""
        owners: dict[str, set[str]] = {}
        for view in self._partition.changelists:
            for file in view.files:
                if file.hunks:
                    owners.setdefault(file.path, set()).add(view.id)
        return {f.path for f in files if len(owners.get(f.path, ())) > 1}

    async def _stage_own_hunks(self, path: str, changelist_id: str) -> VcsResult:
        """Make the index hold exactly changelist_id's hunks of path.

        Staged hunks owned elsewhere are taken out of the index first, then
        this changelist's unstaged hunks are applied to it.
        """
        hunks = [
            h for f in self._partition.all_files() if f.path == path for h in f.hunks
        ]
        for hunk in hunks:
            if hunk.is_staged and hunk.changelist_id != changelist_id:
                result = await self._vcs.unstage_hunk(hunk)
                if not result.success:
                    return result
        staged = 0
        for hunk in hunks:
            if not hunk.is_staged and hunk.changelist_id == changelist_id:
                result = await self._vcs.stage_hunk(hunk)
                if not result.success:
                    return result
                staged += 1
        logger.info("hunks_staged", path=path, changelist_id=changelist_id, count=staged)
        return VcsResult(success=True, message=f"Staged {staged} hunk(s) of {path}")

    async def commit_files(
        self, file_ids: Iterable[str], message: str, *, amend: bool = False
    ) -> VcsResult:
        message = message.strip()
        if not message:
            raise EmptyMessageError("Commit message cannot be empty")
        paths = self._paths_for(file_ids)
        result = await self._vcs.commit(paths, message, amend=amend)
        self._log_result("commit", result, paths)
        await self._scheduler.request()
        return result

    async def revert_files(self, file_ids: Iterable[str]) -> VcsResult:
        paths = self._paths_for(file_ids)
        result = await self._vcs.revert(paths)
        self._log_result("revert", result, paths)
        await self._scheduler.request()
        return result

    async def revert_changelist(self, changelist_id: str) -> VcsResult:
        return await self.revert_files(
            f.id for f in self.files_in_changelist(changelist_id)
        )

    async def stash_files(
        self, file_ids: Iterable[str], message: str | None = None
    ) -> VcsResult:
        paths = self._paths_for(file_ids)
        result = await self._vcs.stash(paths, message)
        self._log_result("stash", result, paths)
        await self._scheduler.request()
        return result

    def _paths_for(self, file_ids: Iterable[str]) -> list[str]:
        wanted = set(file_ids)
        paths = list(
            dict.fromkeys(f.path for f in self._partition.all_files() if f.id in wanted)
        )
        if not paths:
            raise NoFilesSelectedError("No files selected")
        return paths

    @staticmethod
    def _log_result(action: str, result: VcsResult, paths: list[str]) -> None:
        if result.success:
            logger.info(f"{action}_succeeded", files=len(paths), message=result.message)
        else:
            logger.warning(
                f"{action}_failed",
                files=len(paths),
                message=result.message,
                details=result.details,
            )
