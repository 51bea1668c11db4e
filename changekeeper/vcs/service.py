"""Async wrapper for the git CLI, bound to one working tree."""

from __future__ import annotations

import asyncio
import contextlib
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from changekeeper.exceptions import VcsError
from changekeeper.vcs.models import FileStatus, StatusEntry, VcsResult

if TYPE_CHECKING:
    from changekeeper.changelists.models import Hunk

logger = structlog.get_logger()

_DEFAULT_TIMEOUT = 30

_STATUS_PRECEDENCE: tuple[tuple[str, FileStatus], ...] = (
    ("M", "modified"),
    ("T", "modified"),
    ("A", "added"),
    ("D", "deleted"),
    ("R", "renamed"),
    ("C", "added"),
)


class GitService:
    """Async wrapper for git CLI operations on a single repository."""

    def __init__(self, root: Path, *, timeout: int = _DEFAULT_TIMEOUT) -> None:
        self._root = root
        self._timeout = timeout

    @property
    def root(self) -> Path:
        return self._root

    async def is_repo(self) -> bool:
        """Check if the root is inside a git repository."""
        code, _, _ = await self._run("rev-parse", "--is-inside-work-tree")
        return code == 0

    async def status(self) -> list[StatusEntry]:
        """Parse git status --porcelain=v2 into one entry per tracked path."""
        code, stdout, stderr = await self._run("status", "--porcelain=v2")
        if code != 0:
            raise VcsError(f"git status failed: {stderr.strip()}")

        entries: list[StatusEntry] = []
        for line in stdout.splitlines():
            if line.startswith("1 ") or line.startswith("2 "):
                # Type 1: "1 XY sub mH mI mW hH hI path"
                # Type 2: "2 XY sub mH mI mW hH hI Xscore path\torigPath"
                is_rename = line.startswith("2 ")
                max_split = 9 if is_rename else 8
                parts = line.split(" ", max_split)
                if len(parts) < max_split + 1:
                    continue
                xy = parts[1]
                path_part = parts[max_split]
                # For renames, take the new path (before tab)
                if "\t" in path_part:
                    path_part = path_part.split("\t")[0]

                x_status = xy[0] if len(xy) > 0 else "."
                y_status = xy[1] if len(xy) > 1 else "."
                entries.append(
                    StatusEntry(
                        path=path_part,
                        status=_porcelain_to_status(x_status, y_status),
                        is_staged=x_status != ".",
                    )
                )
            elif line.startswith("u "):
                # Unmerged entry; conflicts are surfaced as plain modifications
                parts = line.split(" ", 10)
                if len(parts) >= 11:
                    entries.append(StatusEntry(path=parts[10], status="modified"))
        return entries

    async def untracked_files(self) -> list[str]:
        """List untracked, non-ignored paths."""
        code, stdout, stderr = await self._run(
            "ls-files", "--others", "--exclude-standard"
        )
        if code != 0:
            raise VcsError(f"git ls-files failed: {stderr.strip()}")
        return [line for line in stdout.splitlines() if line]

    async def diff(self, path: str, *, staged: bool = False) -> str:
        """Return unified diff text for one path. staged=True for --cached."""
        args = ["diff"]
        if staged:
            args.append("--cached")
        args.extend(["--", path])
        code, stdout, stderr = await self._run(*args)
        if code != 0:
            raise VcsError(f"git diff failed for {path}: {stderr.strip()}")
        return stdout

    async def stage(self, path: str) -> VcsResult:
        code, _stdout, stderr = await self._run("add", "-A", "--", path)
        if code == 0:
            return VcsResult(success=True, message=f"Staged {path}")
        return VcsResult(
            success=False, message=f"Failed to stage {path}", details=stderr.strip()
        )

    async def unstage(self, path: str) -> VcsResult:
        code, _stdout, stderr = await self._run("restore", "--staged", "--", path)
        if code != 0:
            # Older git without restore
            code, _stdout, stderr = await self._run("reset", "-q", "HEAD", "--", path)
        if code == 0:
            return VcsResult(success=True, message=f"Unstaged {path}")
        return VcsResult(
            success=False, message=f"Failed to unstage {path}", details=stderr.strip()
        )

    async def stage_hunk(self, hunk: Hunk) -> VcsResult:
        """Apply one working-tree hunk to the index."""
        code, _stdout, stderr = await self._run(
            "apply", "--cached", "-", stdin=_hunk_patch(hunk)
        )
        if code == 0:
            return VcsResult(success=True, message=f"Staged hunk in {hunk.file_path}")
        return VcsResult(
            success=False,
            message=f"Failed to stage hunk in {hunk.file_path}",
            details=stderr.strip(),
        )

    async def unstage_hunk(self, hunk: Hunk) -> VcsResult:
        """Take one staged hunk back out of the index; the working tree keeps it."""
        code, _stdout, stderr = await self._run(
            "apply", "--cached", "--reverse", "-", stdin=_hunk_patch(hunk)
        )
        if code == 0:
            return VcsResult(
                success=True, message=f"Unstaged hunk in {hunk.file_path}"
            )
        return VcsResult(
            success=False,
            message=f"Failed to unstage hunk in {hunk.file_path}",
            details=stderr.strip(),
        )

    async def is_tracked(self, path: str) -> bool:
        code, stdout, stderr = await self._run("ls-files", "--", path)
        if code != 0:
            logger.warning("git_is_tracked_failed", path=path, error=stderr.strip())
            return False
        return bool(stdout.strip())

    async def commit(
        self, paths: list[str], message: str, *, amend: bool = False
    ) -> VcsResult:
        """Commit exactly the given paths, even if other paths are staged."""
        if not paths:
            return VcsResult(success=False, message="No files specified.")

        code, _stdout, stderr = await self._run("add", "-A", "--", *paths)
        if code != 0:
            return VcsResult(
                success=False,
                message="Failed to stage files for commit",
                details=stderr.strip(),
            )

        args = ["commit", "-m", message, "--only"]
        if amend:
            args.append("--amend")
        args.extend(["--", *paths])
        code, stdout, stderr = await self._run(*args)
        return _commit_result(message, code, stdout, stderr)

    async def commit_staged(
        self, paths: list[str], message: str, *, amend: bool = False
    ) -> VcsResult:
        """Commit the index content of exactly the given paths.

        The commit is built in a scratch index seeded from HEAD, so entries
        staged for any other path stay staged and out of the commit.
        """
        if not paths:
            return VcsResult(success=False, message="No files specified.")

        code, listing, stderr = await self._run("ls-files", "-s", "--", *paths)
        if code != 0:
            return VcsResult(
                success=False, message="Failed to read the index", details=stderr.strip()
            )

        with tempfile.TemporaryDirectory(prefix="changekeeper-") as scratch:
            env = {"GIT_INDEX_FILE": str(Path(scratch) / "index")}
            code, _stdout, stderr = await self._run("read-tree", "HEAD", env=env)
            if code != 0:
                # unborn branch
                code, _stdout, stderr = await self._run("read-tree", "--empty", env=env)
            if code == 0:
                code, _stdout, stderr = await self._run(
                    "update-index", "--force-remove", "--", *paths, env=env
                )
            if code == 0 and listing.strip():
                code, _stdout, stderr = await self._run(
                    "update-index", "--index-info", env=env, stdin=listing
                )
            if code != 0:
                return VcsResult(
                    success=False,
                    message="Failed to prepare the commit",
                    details=stderr.strip(),
                )

            args = ["commit", "-m", message]
            if amend:
                args.append("--amend")
            code, stdout, stderr = await self._run(*args, env=env)
        return _commit_result(message, code, stdout, stderr)

    async def revert(self, paths: list[str]) -> VcsResult:
        """Discard staged and unstaged changes for the given paths."""
        if not paths:
            return VcsResult(success=False, message="No files specified.")
        code, _stdout, stderr = await self._run("reset", "-q", "HEAD", "--", *paths)
        if code != 0:
            return VcsResult(
                success=False, message="Failed to unstage files", details=stderr.strip()
            )
        code, _stdout, stderr = await self._run("checkout", "--", *paths)
        if code == 0:
            return VcsResult(success=True, message=f"Reverted {len(paths)} file(s)")
        return VcsResult(
            success=False, message="Failed to revert files", details=stderr.strip()
        )

    async def stash(self, paths: list[str], message: str | None = None) -> VcsResult:
        """Stash only the given paths, untracked ones included."""
        if not paths:
            return VcsResult(success=False, message="No files specified.")
        args = ["stash", "push", "--include-untracked"]
        if message:
            args.extend(["-m", message])
        args.extend(["--", *paths])
        code, stdout, stderr = await self._run(*args)
        if code == 0:
            return VcsResult(
                success=True,
                message=f"Stashed {len(paths)} file(s)",
                details=stdout.strip(),
            )
        return VcsResult(
            success=False, message="Failed to stash files", details=stderr.strip()
        )

    async def _run(
        self,
        *args: str,
        stdin: str | None = None,
        env: dict[str, str] | None = None,
    ) -> tuple[int, str, str]:
        """Execute a git command via asyncio.create_subprocess_exec.

        ``stdin`` is fed to the process; ``env`` entries are layered over
        the current environment.
        """
        if not self._root.is_dir():
            return 1, "", f"Directory does not exist: {self._root}"

        cmd = ("git", *args)
        logger.debug("git_exec", command=cmd, cwd=str(self._root))

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=self._root,
                stdin=asyncio.subprocess.PIPE if stdin is not None else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env={**os.environ, **env} if env else None,
            )
            communicate = (
                proc.communicate(input=stdin.encode())
                if stdin is not None
                else proc.communicate()
            )
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                communicate, timeout=self._timeout
            )
            stdout = stdout_bytes.decode("utf-8", errors="replace")
            stderr = stderr_bytes.decode("utf-8", errors="replace")
            return proc.returncode or 0, stdout, stderr
        except TimeoutError:
            logger.warning("git_exec_timeout", command=cmd, timeout=self._timeout)
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            return 1, "", f"Command timed out after {self._timeout}s"
        except FileNotFoundError:
            return 1, "", "git is not installed or not in PATH"
        except OSError as e:
            logger.error("git_exec_error", command=cmd, error=str(e))
            return 1, "", str(e)


def _porcelain_to_status(x_status: str, y_status: str) -> FileStatus:
    """Collapse the index and worktree porcelain codes into one status."""
    codes = {x_status, y_status}
    for code, status in _STATUS_PRECEDENCE:
        if code in codes:
            return status
    return "modified"


def _hunk_patch(hunk: Hunk) -> str:
    """Single-hunk unified diff that `git apply` accepts."""
    return (
        f"--- a/{hunk.file_path}\n"
        f"+++ b/{hunk.file_path}\n"
        f"@@ -{hunk.old_start},{hunk.old_lines} "
        f"+{hunk.new_start},{hunk.new_lines} @@\n"
        f"{hunk.content}\n"
    )


def _commit_result(message: str, code: int, stdout: str, stderr: str) -> VcsResult:
    if code == 0:
        # Extract short hash from output like "[main abc1234] message"
        short_hash = ""
        for line in stdout.splitlines():
            if line.startswith("["):
                bracket_end = line.find("]")
                if bracket_end > 0:
                    inner = line[1:bracket_end]
                    parts = inner.split()
                    if len(parts) >= 2:
                        short_hash = parts[-1]
                break
        msg = f"{short_hash} {message}" if short_hash else message
        return VcsResult(success=True, message=msg, details=stdout.strip())
    return VcsResult(
        success=False,
        message="Failed to commit",
        details=stderr.strip() or stdout.strip(),
    )
