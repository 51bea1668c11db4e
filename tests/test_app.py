"""Tests for the build_manager() bootstrap function."""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path
from unittest.mock import patch

import structlog

from changekeeper.app import _configure_logging, _resolve_against, build_manager
from changekeeper.changelists.manager import ChangelistManager
from changekeeper.core.config import ChangekeeperConfig
from changekeeper.storage.memory import MemoryStateStore
from changekeeper.storage.sqlite import SqliteStateStore
from changekeeper.vcs.service import GitService


def _patched_build_manager(config, **kwargs):
    """Call build_manager with logging setup patched to avoid side effects."""
    with patch("changekeeper.app._configure_logging"):
        return build_manager(config, **kwargs)


class TestBuildManager:
    def test_returns_manager(self, config):
        manager = _patched_build_manager(config)
        assert isinstance(manager, ChangelistManager)
        assert manager.events is not None

    def test_memory_storage_backend(self, config):
        manager = _patched_build_manager(config)
        assert isinstance(manager._state_store, MemoryStateStore)

    def test_sqlite_storage_backend(self, tmp_path):
        config = ChangekeeperConfig(repo_root=tmp_path, storage_backend="sqlite")
        manager = _patched_build_manager(config)
        assert isinstance(manager._state_store, SqliteStateStore)
        assert (tmp_path / ".changekeeper").is_dir()

    def test_git_backend_bound_to_repo(self, config, tmp_path):
        manager = _patched_build_manager(config)
        assert isinstance(manager._vcs, GitService)
        assert manager._vcs.root == tmp_path.resolve()

    def test_injected_collaborators(self, config, fake_vcs, state_store):
        manager = _patched_build_manager(config, vcs=fake_vcs, state_store=state_store)
        assert manager._vcs is fake_vcs
        assert manager._state_store is state_store

    def test_default_name_from_config(self, tmp_path):
        config = ChangekeeperConfig(
            repo_root=tmp_path, storage_backend="memory", default_changelist_name="Work"
        )
        manager = _patched_build_manager(config)
        assert manager.assignments.default.name == "Work"

    def test_logging_skipped_when_disabled(self, config):
        with patch("changekeeper.app._configure_logging") as mock_configure:
            build_manager(config, configure_logging=False)
        mock_configure.assert_not_called()


class TestConfigureLogging:
    def test_file_handler_added(self, tmp_path):
        config = ChangekeeperConfig(repo_root=tmp_path)
        root = logging.getLogger()
        saved = root.handlers[:]
        try:
            _configure_logging(config, log_dir=tmp_path / "logs")
            handlers = [
                h
                for h in root.handlers
                if isinstance(h, logging.handlers.RotatingFileHandler)
            ]
            assert len(handlers) == 1
            assert (tmp_path / "logs").is_dir()
        finally:
            for handler in root.handlers[:]:
                handler.close()
                root.removeHandler(handler)
            for handler in saved:
                root.addHandler(handler)
            structlog.reset_defaults()

    def test_resolve_against(self, tmp_path):
        assert _resolve_against(tmp_path / "x", tmp_path / "y") == tmp_path / "x"
        assert _resolve_against(Path("rel"), tmp_path) == tmp_path / "rel"
