"""Data models for version-control command results."""

from typing import Literal

from pydantic import BaseModel, ConfigDict

FileStatus = Literal["modified", "added", "deleted", "untracked", "renamed"]


class StatusEntry(BaseModel):
    """One tracked path with pending changes."""

    model_config = ConfigDict(frozen=True)

    path: str
    status: FileStatus
    is_staged: bool = False


class VcsResult(BaseModel):
    """Generic result from a mutating VCS operation."""

    model_config = ConfigDict(frozen=True)

    success: bool
    message: str
    details: str = ""
