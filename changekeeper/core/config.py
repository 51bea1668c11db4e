"""Unified configuration via pydantic-settings."""

from pathlib import Path
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

STATE_DIR_NAME = ".changekeeper"


def ensure_state_dir(repo_root: Path) -> Path:
    """Create <repo_root>/.changekeeper if missing and return it."""
    state_dir = repo_root / STATE_DIR_NAME
    state_dir.mkdir(parents=True, exist_ok=True)
    return state_dir


class ChangekeeperConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CHANGEKEEPER_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Required
    repo_root: Path

    # Storage
    storage_backend: Literal["memory", "sqlite"] = "sqlite"
    storage_path: Path = Path(STATE_DIR_NAME) / "state.db"

    # Changelists
    default_changelist_name: str = "Changes"

    # Reconciliation timing
    pending_move_window_seconds: float = 2.0
    refresh_debounce_seconds: float = 0.5
    settle_delay_seconds: float = 0.1
    poll_interval_seconds: float = 2.0

    # Extension detection
    proximity_threshold: int = 3

    # Git
    git_timeout_seconds: int = 30

    # Logging
    log_level: str = "INFO"
    log_dir: Path | None = None
    log_max_bytes: int = 10_485_760
    log_backup_count: int = 5

    @field_validator("repo_root")
    @classmethod
    def resolve_repo_root(cls, v: Path) -> Path:
        r = v.expanduser().resolve()
        if not r.is_dir():
            raise ValueError(f"repository root does not exist: {r}")
        return r

    @field_validator("proximity_threshold")
    @classmethod
    def non_negative_threshold(cls, v: int) -> int:
        if v < 0:
            raise ValueError("proximity_threshold must be >= 0")
        return v

    @field_validator(
        "pending_move_window_seconds",
        "refresh_debounce_seconds",
        "settle_delay_seconds",
        "poll_interval_seconds",
    )
    @classmethod
    def non_negative_seconds(cls, v: float) -> float:
        if v < 0:
            raise ValueError("durations must be >= 0")
        return v

    @field_validator("default_changelist_name")
    @classmethod
    def non_empty_default_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("default_changelist_name must not be empty")
        return v
