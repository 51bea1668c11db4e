"""Owned assignment state: changelists, active changelist, file and hunk maps."""

from __future__ import annotations

import uuid
from collections.abc import Iterable

import structlog

from changekeeper.changelists.models import (
    DEFAULT_CHANGELIST_ID,
    Changelist,
    PersistedChangelist,
    PersistedState,
)
from changekeeper.exceptions import DuplicateNameError, InvalidNameError

logger = structlog.get_logger()


def _name_key(name: str) -> str:
    return name.strip().casefold()


class AssignmentStore:
    """Single owner of assignment state.

    All reads and writes go through this API so stale-reference pruning and
    name uniqueness are enforced in one place.
    """

    def __init__(self, default_name: str = "Changes") -> None:
        self._default_name = default_name
        self._changelists: list[Changelist] = []
        self._file_assignments: dict[str, str] = {}
        self._hunk_assignments: dict[str, str] = {}
        self._active_id: str = DEFAULT_CHANGELIST_ID
        self.reset()

    # --- changelists ---

    @property
    def changelists(self) -> list[Changelist]:
        return list(self._changelists)

    @property
    def default(self) -> Changelist:
        for changelist in self._changelists:
            if changelist.is_default:
                return changelist
        # load() and reset() guarantee a default; rebuild it if that ever breaks
        changelist = self._make_default()
        self._changelists.insert(0, changelist)
        return changelist

    @property
    def active_id(self) -> str:
        return self._active_id

    def get(self, changelist_id: str | None) -> Changelist | None:
        if changelist_id is None:
            return None
        for changelist in self._changelists:
            if changelist.id == changelist_id:
                return changelist
        return None

    def exists(self, changelist_id: str | None) -> bool:
        return self.get(changelist_id) is not None

    def resolve(self, changelist_id: str | None) -> str:
        """Return the id if it names a live changelist, else the active one."""
        if changelist_id is not None and self.exists(changelist_id):
            return changelist_id
        return self._active_id

    def create_changelist(
        self, name: str, description: str | None = None
    ) -> Changelist:
        name = self._validate_name(name)
        changelist = Changelist(
            id=uuid.uuid4().hex[:12], name=name, description=description
        )
        self._changelists.append(changelist)
        logger.info("changelist_created", changelist_id=changelist.id, name=name)
        return changelist

    def delete_changelist(self, changelist_id: str) -> bool:
        changelist = self.get(changelist_id)
        if changelist is None or changelist.is_default:
            return False

        if self._active_id == changelist_id:
            self._active_id = self.default.id
        target = self._active_id

        for path, assigned in self._file_assignments.items():
            if assigned == changelist_id:
                self._file_assignments[path] = target
        for hunk, assigned in self._hunk_assignments.items():
            if assigned == changelist_id:
                self._hunk_assignments[hunk] = target

        self._changelists = [c for c in self._changelists if c.id != changelist_id]
        logger.info(
            "changelist_deleted", changelist_id=changelist_id, reassigned_to=target
        )
        return True

    def rename_changelist(self, changelist_id: str, new_name: str) -> bool:
        changelist = self.get(changelist_id)
        if changelist is None:
            return False
        changelist.name = self._validate_name(new_name, exclude_id=changelist_id)
        return True

    def set_active(self, changelist_id: str) -> bool:
        if not self.exists(changelist_id):
            return False
        self._active_id = changelist_id
        return True

    def set_expanded(self, changelist_id: str, expanded: bool) -> bool:
        changelist = self.get(changelist_id)
        if changelist is None:
            return False
        changelist.is_expanded = expanded
        return True

    # --- assignments ---

    @property
    def file_assignments(self) -> dict[str, str]:
        return dict(self._file_assignments)

    @property
    def hunk_assignments(self) -> dict[str, str]:
        return dict(self._hunk_assignments)

    def file_assignment(self, path: str) -> str | None:
        return self._file_assignments.get(path)

    def hunk_assignment(self, hunk_id: str) -> str | None:
        return self._hunk_assignments.get(hunk_id)

    def assign_file(self, path: str, changelist_id: str) -> bool:
        if not self.exists(changelist_id):
            return False
        self._file_assignments[path] = changelist_id
        return True

    def unassign_file(self, path: str) -> None:
        self._file_assignments.pop(path, None)

    def assign_hunk(self, hunk_id: str, changelist_id: str) -> bool:
        if not self.exists(changelist_id):
            return False
        self._hunk_assignments[hunk_id] = changelist_id
        return True

    def replace_file_assignments(self, assignments: dict[str, str]) -> None:
        self._file_assignments = {
            path: cl_id for path, cl_id in assignments.items() if self.exists(cl_id)
        }

    def prune(self, valid_paths: Iterable[str], hunk_ids: Iterable[str]) -> None:
        """Drop file entries outside valid_paths and hunk entries not in hunk_ids."""
        paths = set(valid_paths)
        hunks = set(hunk_ids)
        self._file_assignments = {
            p: c for p, c in self._file_assignments.items() if p in paths
        }
        self._hunk_assignments = {
            h: c for h, c in self._hunk_assignments.items() if h in hunks
        }

    # --- persistence ---

    def load(self, state: PersistedState | None) -> None:
        if state is None or not state.changelists:
            self.reset()
            if state is not None:
                logger.info("persisted_state_empty")
            return

        self._changelists = [
            Changelist(
                id=p.id,
                name=p.name,
                description=p.description,
                is_default=p.is_default,
                is_expanded=p.is_expanded,
                created_at=p.created_at,
            )
            for p in state.changelists
        ]
        defaults = [c for c in self._changelists if c.is_default]
        if not defaults:
            self._changelists.insert(0, self._make_default())
        else:
            # exactly one default
            for extra in defaults[1:]:
                extra.is_default = False

        active = state.active_changelist_id
        self._active_id = active if self.exists(active) else self.default.id

        self._file_assignments = {
            path: cl_id
            for path, cl_id in state.file_assignments.items()
            if self.exists(cl_id)
        }
        self._hunk_assignments = {
            hunk: cl_id
            for hunk, cl_id in state.hunk_assignments.items()
            if self.exists(cl_id)
        }
        logger.info(
            "assignment_state_loaded",
            changelists=len(self._changelists),
            file_assignments=len(self._file_assignments),
            hunk_assignments=len(self._hunk_assignments),
            active_changelist_id=self._active_id,
        )

    def snapshot(self) -> PersistedState:
        return PersistedState(
            changelists=[
                PersistedChangelist(
                    id=c.id,
                    name=c.name,
                    description=c.description,
                    is_default=c.is_default,
                    is_expanded=c.is_expanded,
                    created_at=c.created_at,
                )
                for c in self._changelists
            ],
            file_assignments=dict(self._file_assignments),
            hunk_assignments=dict(self._hunk_assignments),
            active_changelist_id=self._active_id,
        )

    def reset(self) -> None:
        self._changelists = [self._make_default()]
        self._file_assignments = {}
        self._hunk_assignments = {}
        self._active_id = DEFAULT_CHANGELIST_ID

    def _make_default(self) -> Changelist:
        return Changelist(
            id=DEFAULT_CHANGELIST_ID,
            name=self._default_name,
            description="Default changelist",
            is_default=True,
            is_expanded=False,
        )

    def _validate_name(self, name: str, *, exclude_id: str | None = None) -> str:
        name = name.strip()
        if not name:
            raise InvalidNameError("Changelist name cannot be empty")
        key = _name_key(name)
        for changelist in self._changelists:
            if changelist.id != exclude_id and _name_key(changelist.name) == key:
                raise DuplicateNameError(
                    f'A changelist named "{changelist.name}" already exists'
                )
        return name
