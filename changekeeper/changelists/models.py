"""Data models for changelists, materialized files and hunks."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from changekeeper.vcs.models import FileStatus

DEFAULT_CHANGELIST_ID = "default"


class Hunk(BaseModel):
    """A block of a unified diff, identified by its position in the file."""

    model_config = ConfigDict(frozen=True)

    id: str
    file_path: str
    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    content: str = ""
    is_staged: bool = False
    changelist_id: str | None = None

    @property
    def old_end(self) -> int:
        return self.old_start + self.old_lines

    @property
    def new_end(self) -> int:
        return self.new_start + self.new_lines

    def contains_line(self, line: int) -> bool:
        """True if the 1-based working-tree line falls inside this hunk."""
        return self.new_start <= line <= self.new_start + self.new_lines - 1


class FileItem(BaseModel):
    """One file as shown in one changelist (or the unversioned bucket)."""

    model_config = ConfigDict(frozen=True)

    id: str
    path: str
    name: str
    status: FileStatus
    is_selected: bool = False
    is_staged: bool = False
    changelist_id: str | None = None
    hunks: list[Hunk] = []


# Mutable: AssignmentStore renames and expands these in place.
class Changelist(BaseModel):
    id: str
    name: str
    description: str | None = None
    is_default: bool = False
    is_expanded: bool = True
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ChangelistView(BaseModel):
    """A changelist together with the files reconciliation placed in it."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str | None = None
    is_default: bool = False
    is_expanded: bool = True
    is_active: bool = False
    files: list[FileItem] = []

    @classmethod
    def of(
        cls, changelist: Changelist, files: list[FileItem], active_id: str | None
    ) -> ChangelistView:
        return cls(
            id=changelist.id,
            name=changelist.name,
            description=changelist.description,
            is_default=changelist.is_default,
            is_expanded=changelist.is_expanded,
            is_active=changelist.id == active_id,
            files=files,
        )

    @property
    def hunks(self) -> list[Hunk]:
        return [hunk for file in self.files for hunk in file.hunks]


class Partition(BaseModel):
    """The full changelist/file/hunk layout produced by one reconciliation."""

    model_config = ConfigDict(frozen=True)

    changelists: list[ChangelistView] = []
    unversioned: list[FileItem] = []
    active_changelist_id: str | None = None

    def get(self, changelist_id: str) -> ChangelistView | None:
        for view in self.changelists:
            if view.id == changelist_id:
                return view
        return None

    def all_files(self) -> list[FileItem]:
        files = [file for view in self.changelists for file in view.files]
        files.extend(self.unversioned)
        return files

    def find_hunk(self, hunk_id: str) -> Hunk | None:
        for file in self.all_files():
            for hunk in file.hunks:
                if hunk.id == hunk_id:
                    return hunk
        return None


class PendingMove(BaseModel):
    """Short-lived override recorded when the user moves a file by hand.

    target_changelist_id None means the unversioned bucket.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    target_changelist_id: str | None = None
    source_changelist_id: str | None = None
    timestamp: float

    def is_expired(self, now: float, window: float) -> bool:
        return now - self.timestamp > window


class PersistedChangelist(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    description: str | None = None
    is_default: bool = False
    is_expanded: bool = True
    created_at: datetime


class PersistedState(BaseModel):
    """Serializable snapshot of the assignment store."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    changelists: list[PersistedChangelist] = []
    file_assignments: dict[str, str] = Field(default_factory=dict)
    hunk_assignments: dict[str, str] = Field(default_factory=dict)
    active_changelist_id: str | None = None

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
