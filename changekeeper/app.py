"""Bootstrap: wires all components together."""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from changekeeper.changelists.manager import ChangelistManager
from changekeeper.core.config import ChangekeeperConfig, ensure_state_dir
from changekeeper.core.events import EventBus
from changekeeper.storage.memory import MemoryStateStore
from changekeeper.storage.sqlite import SqliteStateStore
from changekeeper.vcs.service import GitService

if TYPE_CHECKING:
    from changekeeper.storage.base import StateStore
    from changekeeper.vcs.base import VcsBackend

logger = structlog.get_logger()


def _resolve_against(path: Path, base: Path) -> Path:
    """Return *path* unchanged if absolute, otherwise resolve it against *base*."""
    return path if path.is_absolute() else base / path


def _configure_logging(
    config: ChangekeeperConfig, *, log_dir: Path | None = None
) -> None:
    """Set up structlog with console output and optional rotating JSON file handler."""
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]

    root_logger = logging.getLogger()
    root_logger.setLevel(config.log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(),
        )
    )
    root_logger.addHandler(console_handler)

    # JSON lines, one per event
    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / "changekeeper.log",
            maxBytes=config.log_max_bytes,
            backupCount=config.log_backup_count,
        )
        file_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processor=structlog.processors.JSONRenderer(),
            )
        )
        root_logger.addHandler(file_handler)

    structlog.configure(
        processors=shared_processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def build_manager(
    config: ChangekeeperConfig | None = None,
    *,
    vcs: VcsBackend | None = None,
    state_store: StateStore | None = None,
    event_bus: EventBus | None = None,
    configure_logging: bool = True,
) -> ChangelistManager:
    if config is None:
        config = ChangekeeperConfig()  # type: ignore[call-arg]  # pydantic-settings loads from env

    repo_root = config.repo_root
    resolved_log_dir = (
        _resolve_against(config.log_dir, repo_root)
        if config.log_dir is not None
        else None
    )
    if configure_logging:
        _configure_logging(config, log_dir=resolved_log_dir)

    logger.info(
        "manager_building",
        repo_root=str(repo_root),
        storage_backend=config.storage_backend,
        log_level=config.log_level,
    )

    if state_store is None:
        if config.storage_backend == "sqlite":
            ensure_state_dir(repo_root)
            state_store = SqliteStateStore(
                _resolve_against(config.storage_path, repo_root),
                workspace=str(repo_root),
            )
        else:
            state_store = MemoryStateStore()

    if vcs is None:
        vcs = GitService(repo_root, timeout=config.git_timeout_seconds)

    manager = ChangelistManager(
        vcs,
        state_store,
        event_bus=event_bus or EventBus(),
        default_changelist_name=config.default_changelist_name,
        proximity_threshold=config.proximity_threshold,
        pending_move_window_seconds=config.pending_move_window_seconds,
        refresh_debounce_seconds=config.refresh_debounce_seconds,
        settle_delay_seconds=config.settle_delay_seconds,
    )

    logger.info(
        "manager_built",
        state_store=type(state_store).__name__,
        proximity_threshold=config.proximity_threshold,
    )
    return manager
