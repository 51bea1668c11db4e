"""Per-refresh merge of live VCS state, stored assignments and pending moves."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, ConfigDict

from changekeeper.changelists.hunks import file_id, file_name
from changekeeper.changelists.matching import (
    DEFAULT_PROXIMITY_THRESHOLD,
    match_continuation,
)
from changekeeper.changelists.models import (
    ChangelistView,
    FileItem,
    Hunk,
    Partition,
    PendingMove,
)
from changekeeper.vcs.models import StatusEntry

if TYPE_CHECKING:
    from changekeeper.changelists.store import AssignmentStore

logger = structlog.get_logger()

Matcher = Callable[..., Hunk | None]

_NO_HUNK_STATUSES = frozenset({"deleted", "untracked"})


class VcsSnapshot(BaseModel):
    """Everything one refresh read from the VCS, collected before reconciling."""

    model_config = ConfigDict(frozen=True)

    tracked: list[StatusEntry] = []
    untracked: list[str] = []
    hunks: dict[str, list[Hunk]] = {}

    @property
    def valid_paths(self) -> set[str]:
        return {entry.path for entry in self.tracked} | set(self.untracked)


def needs_hunks(entry: StatusEntry) -> bool:
    return entry.status not in _NO_HUNK_STATUSES


class Reconciler:
    """Builds a fresh Partition each cycle.

    Keeps the previous cycle's hunks per path so positional hunk ids that
    drifted can be matched back to the change they continue.
    """

    def __init__(
        self,
        *,
        proximity_threshold: int = DEFAULT_PROXIMITY_THRESHOLD,
        matcher: Matcher = match_continuation,
    ) -> None:
        self._threshold = proximity_threshold
        self._matcher = matcher
        self._previous_hunks: dict[str, list[Hunk]] = {}

    def previous_hunks(self, path: str) -> list[Hunk]:
        return list(self._previous_hunks.get(path, []))

    def forget(self) -> None:
        self._previous_hunks.clear()

    def reconcile(
        self,
        snapshot: VcsSnapshot,
        store: AssignmentStore,
        pending: Iterable[PendingMove],
        previous: Partition,
    ) -> Partition:
        tracked = _dedupe_tracked(snapshot.tracked)
        tracked_paths = {entry.path for entry in tracked}
        untracked = [p for p in dict.fromkeys(snapshot.untracked) if p not in tracked_paths]
        valid_paths = tracked_paths | set(untracked)
        moves = {m.path: m for m in pending if m.path in valid_paths}

        # Hunk assignment, with extension detection for drifted ids
        resolved: dict[str, list[Hunk]] = {}
        for entry in tracked:
            if not needs_hunks(entry):
                continue
            candidates = self._previous_hunks.get(entry.path, [])
            resolved[entry.path] = [
                self._assign_hunk(hunk, candidates, store)
                for hunk in snapshot.hunks.get(entry.path, [])
            ]

        # Pending moves override whatever the maps produced
        forced_unversioned: set[str] = set()
        for path, move in moves.items():
            target = move.target_changelist_id
            if target is None:
                forced_unversioned.add(path)
                continue
            if not store.assign_file(path, target):
                continue
            if path in resolved:
                resolved[path] = [
                    _force(hunk, target, store)
                    if move.source_changelist_id is None
                    or hunk.changelist_id == move.source_changelist_id
                    else hunk
                    for hunk in resolved[path]
                ]

        moved_in = {p for p, m in moves.items() if m.target_changelist_id is not None}
        held = {
            f.path
            for f in previous.unversioned
            if f.status != "untracked" and f.path in tracked_paths
        }
        held = (held | forced_unversioned) - moved_in

        selected = {
            f.id for f in previous.all_files() if f.is_selected and f.path in valid_paths
        }

        placements: dict[str, list[FileItem]] = {c.id: [] for c in store.changelists}
        unversioned: list[FileItem] = []
        file_level: dict[str, str] = {}

        for entry in tracked:
            fid = file_id(entry.path)
            item = FileItem(
                id=fid,
                path=entry.path,
                name=file_name(entry.path),
                status=entry.status,
                is_selected=fid in selected,
                is_staged=entry.is_staged,
            )
            if entry.path in held:
                unversioned.append(item)
                continue

            hunks = resolved.get(entry.path, [])
            if hunks:
                targets = list(dict.fromkeys(h.changelist_id for h in hunks))
                move = moves.get(entry.path)
                if (
                    move is not None
                    and move.target_changelist_id is not None
                    and move.target_changelist_id not in targets
                    and store.exists(move.target_changelist_id)
                ):
                    targets.append(move.target_changelist_id)
                for cl_id in targets:
                    placements[cl_id].append(
                        item.model_copy(
                            update={
                                "changelist_id": cl_id,
                                "hunks": [h for h in hunks if h.changelist_id == cl_id],
                            }
                        )
                    )
            else:
                cl_id = store.resolve(store.file_assignment(entry.path))
                placements[cl_id].append(item.model_copy(update={"changelist_id": cl_id}))
                file_level[entry.path] = cl_id

        for path in untracked:
            fid = file_id(path)
            item = FileItem(
                id=fid,
                path=path,
                name=file_name(path),
                status="untracked",
                is_selected=fid in selected,
            )
            assigned = store.file_assignment(path)
            if path in forced_unversioned or not store.exists(assigned):
                unversioned.append(item)
                continue
            placements[assigned].append(item.model_copy(update={"changelist_id": assigned}))
            file_level[path] = assigned

        # Reverted or committed paths fall out of both maps here
        store.replace_file_assignments(file_level)
        store.prune(
            valid_paths, (h.id for hunks in resolved.values() for h in hunks)
        )
        self._previous_hunks = {
            path: hunks for path, hunks in resolved.items() if path in tracked_paths
        }

        for files in placements.values():
            files.sort(key=lambda f: f.name.casefold())

        return Partition(
            changelists=[
                ChangelistView.of(c, placements[c.id], store.active_id)
                for c in store.changelists
            ],
            unversioned=unversioned,
            active_changelist_id=store.active_id,
        )

    def _assign_hunk(
        self, hunk: Hunk, candidates: list[Hunk], store: AssignmentStore
    ) -> Hunk:
        direct = store.hunk_assignment(hunk.id)
        if direct is not None and store.exists(direct):
            return hunk.model_copy(update={"changelist_id": direct})

        match = self._matcher(hunk, candidates, threshold=self._threshold)
        if match is not None:
            cl_id = store.resolve(store.hunk_assignment(match.id) or match.changelist_id)
            logger.debug(
                "hunk_extension_matched",
                path=hunk.file_path,
                previous_hunk=match.id,
                hunk=hunk.id,
                changelist_id=cl_id,
            )
        else:
            cl_id = store.active_id
        store.assign_hunk(hunk.id, cl_id)
        return hunk.model_copy(update={"changelist_id": cl_id})


def _force(hunk: Hunk, target: str, store: AssignmentStore) -> Hunk:
    store.assign_hunk(hunk.id, target)
    return hunk.model_copy(update={"changelist_id": target})


def _dedupe_tracked(entries: list[StatusEntry]) -> list[StatusEntry]:
    seen: dict[str, StatusEntry] = {}
    for entry in entries:
        seen.setdefault(entry.path, entry)
    return list(seen.values())
