"""CLI entry point for changekeeper."""

import asyncio
import contextlib
import sys

import structlog

from changekeeper.app import build_manager
from changekeeper.changelists.manager import ChangelistManager
from changekeeper.cli import formatter
from changekeeper.cli.handler import CommandHandler
from changekeeper.core.config import ChangekeeperConfig
from changekeeper.exceptions import ConfigError, StorageError
from changekeeper.vcs.service import GitService

logger = structlog.get_logger()


async def _poll(manager: ChangelistManager, interval: float) -> None:
    """Periodically ask for a refresh; the scheduler drops or defers as needed."""
    while True:
        await asyncio.sleep(interval)
        await manager.refresh()


async def _run_cli(config: ChangekeeperConfig) -> None:
    if not await GitService(config.repo_root).is_repo():
        raise ConfigError(f"Not a git repository: {config.repo_root}")

    manager = build_manager(config)
    await manager.startup()
    await manager.reconcile_now()
    handler = CommandHandler(manager)

    poller = asyncio.create_task(_poll(manager, config.poll_interval_seconds))
    logger.info("cli_starting", repo_root=str(config.repo_root))
    print(f"changekeeper ready in {config.repo_root}")
    print("Type 'help' for commands (Ctrl+D to exit):\n")
    print(formatter.format_partition(manager.partition))

    try:
        while True:
            try:
                line = await asyncio.to_thread(input, "> ")
            except EOFError:
                break

            if line.strip() in ("quit", "exit"):
                break
            response = await handler.handle_command(line)
            print(f"\n{response}\n")
    except KeyboardInterrupt:
        pass
    finally:
        logger.info("cli_shutting_down")
        poller.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await poller
        await manager.shutdown()
        print("\nShutdown complete.")


async def main() -> None:
    try:
        config = ChangekeeperConfig()  # type: ignore[call-arg]  # pydantic-settings loads from env
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        print("Set CHANGEKEEPER_REPO_ROOT or create a .env file.", file=sys.stderr)
        sys.exit(1)

    try:
        await _run_cli(config)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    except StorageError as e:
        print(f"Storage failed: {e}", file=sys.stderr)
        sys.exit(1)


def run() -> None:
    asyncio.run(main())
