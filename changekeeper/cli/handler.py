"""Text command router for the interactive CLI."""

from __future__ import annotations

import shlex
from typing import TYPE_CHECKING

import structlog

from changekeeper.cli import formatter
from changekeeper.exceptions import ValidationError

if TYPE_CHECKING:
    from changekeeper.changelists.manager import ChangelistManager
    from changekeeper.changelists.models import ChangelistView, FileItem

logger = structlog.get_logger()

_SELECTED = "-s"


class CommandHandler:
    def __init__(self, manager: ChangelistManager) -> None:
        self._manager = manager

    async def handle_command(self, text: str) -> str:
        """Route one line of input to the matching manager operation."""
        try:
            parts = shlex.split(text)
        except ValueError as e:
            return f"❌ {e}"
        command = parts[0] if parts else ""
        args = parts[1:]

        try:
            match command:
                case "" | "status":
                    return formatter.format_partition(self._manager.partition)
                case "refresh":
                    return await self._refresh()
                case "new":
                    if not args:
                        return "Usage: new <name> [description]"
                    return await self._new(args[0], " ".join(args[1:]) or None)
                case "rm":
                    if len(args) != 1:
                        return "Usage: rm <changelist>"
                    return await self._delete(args[0])
                case "rename":
                    if len(args) != 2:
                        return "Usage: rename <changelist> <name>"
                    return await self._rename(args[0], args[1])
                case "active":
                    if len(args) != 1:
                        return "Usage: active <changelist>"
                    return await self._active(args[0])
                case "move":
                    if len(args) == 3 and args[0] == "all":
                        return await self._move_all(args[1], args[2])
                    if len(args) != 2:
                        return "Usage: move <path> <changelist>"
                    return await self._move(args[0], args[1])
                case "unversion":
                    if len(args) != 1:
                        return "Usage: unversion <path>"
                    return await self._unversion(args[0])
                case "hunk":
                    if len(args) != 3 or not args[1].isdigit():
                        return "Usage: hunk <path> <line> <changelist>"
                    return await self._move_hunk(args[0], int(args[1]), args[2])
                case "select":
                    return await self._select(args)
                case "commit":
                    return await self._commit(args)
                case "revert":
                    if len(args) != 1:
                        return "Usage: revert <changelist|-s>"
                    return await self._revert(args[0])
                case "stash":
                    if not args:
                        return "Usage: stash <changelist|-s> [message]"
                    return await self._stash(args[0], " ".join(args[1:]) or None)
                case "help":
                    return formatter.format_help()
                case _:
                    return f"Unknown command: {command}\n\n{formatter.format_help()}"
        except ValidationError as e:
            logger.info("command_rejected", command=command, reason=str(e))
            return f"❌ {e}"

    # --- lookups ---

    def _changelist(self, ref: str) -> ChangelistView | None:
        """Find a changelist by id, then by case-insensitive name."""
        partition = self._manager.partition
        view = partition.get(ref)
        if view is not None:
            return view
        key = ref.strip().casefold()
        for view in partition.changelists:
            if view.name.casefold() == key:
                return view
        return None

    def _file(self, path: str) -> FileItem | None:
        for file in self._manager.partition.all_files():
            if file.path == path:
                return file
        return None

    def _file_ids_for(self, ref: str) -> list[str] | None:
        if ref == _SELECTED:
            return [f.id for f in self._manager.selected_files()]
        view = self._changelist(ref)
        if view is None:
            return None
        return [f.id for f in view.files]

    # --- commands ---

    async def _refresh(self) -> str:
        if await self._manager.reconcile_now():
            return formatter.format_partition(self._manager.partition)
        return "❌ Could not read the working tree."

    async def _new(self, name: str, description: str | None) -> str:
        changelist = await self._manager.create_changelist(name, description)
        return f"✅ Created changelist {changelist.name}"

    async def _delete(self, ref: str) -> str:
        view = self._changelist(ref)
        if view is None:
            return f"❌ No changelist {ref}"
        if view.is_default:
            return "❌ The default changelist cannot be deleted."
        await self._manager.delete_changelist(view.id)
        return f"✅ Deleted changelist {view.name}"

    async def _rename(self, ref: str, name: str) -> str:
        view = self._changelist(ref)
        if view is None:
            return f"❌ No changelist {ref}"
        await self._manager.rename_changelist(view.id, name)
        return f"✅ Renamed {view.name} to {name.strip()}"

    async def _active(self, ref: str) -> str:
        view = self._changelist(ref)
        if view is None:
            return f"❌ No changelist {ref}"
        await self._manager.set_active_changelist(view.id)
        return f"✅ Active changelist is now {view.name}"

    async def _move(self, path: str, ref: str) -> str:
        file = self._file(path)
        if file is None:
            return f"❌ No changes in {path}"
        view = self._changelist(ref)
        if view is None:
            return f"❌ No changelist {ref}"
        if not await self._manager.move_file_to_changelist(file.id, view.id):
            return f"{path} is already in {view.name}"
        return f"✅ Moved {path} to {view.name}"

    async def _move_all(self, source_ref: str, target_ref: str) -> str:
        source = self._changelist(source_ref)
        target = self._changelist(target_ref)
        if source is None or target is None:
            return f"❌ No changelist {source_ref if source is None else target_ref}"
        count = await self._manager.move_changelist_files(source.id, target.id)
        text = f"✅ Moved {count} file(s) from {source.name} to {target.name}"
        kept = sum(1 for f in source.files if f.hunks)
        if kept:
            text += f"\n{kept} file(s) tracked by hunk stayed; use 'move <path>' or 'hunk'"
        return text

    async def _unversion(self, path: str) -> str:
        file = self._file(path)
        if file is None:
            return f"❌ No changes in {path}"
        if not await self._manager.move_file_to_unversioned(file.id):
            return f"{path} is already unversioned"
        return f"✅ Moved {path} to Unversioned Files"

    async def _move_hunk(self, path: str, line: int, ref: str) -> str:
        hunk = self._manager.hunk_at_line(path, line)
        if hunk is None:
            return f"❌ No hunk at {path}:{line}"
        view = self._changelist(ref)
        if view is None:
            return f"❌ No changelist {ref}"
        if not await self._manager.move_hunk_to_changelist(hunk.id, view.id):
            return f"Hunk is already in {view.name}"
        return f"✅ {formatter.format_hunk(hunk, view.name)}"

    async def _select(self, args: list[str]) -> str:
        if not args:
            return "Usage: select <path>... | select all [changelist] | select none"
        if args[0] == "none":
            await self._manager.deselect_all()
            return "Selection cleared."
        if args[0] == "all":
            changelist_id = None
            if len(args) > 1:
                view = self._changelist(args[1])
                if view is None:
                    return f"❌ No changelist {args[1]}"
                changelist_id = view.id
            await self._manager.select_all(changelist_id)
            return f"{len(self._manager.selected_files())} file(s) selected."

        missing = [p for p in args if self._file(p) is None]
        if missing:
            return f"❌ No changes in {', '.join(missing)}"
        for path in args:
            file = self._file(path)
            if file is not None:
                await self._manager.toggle_selection(file.id)
        return f"{len(self._manager.selected_files())} file(s) selected."

    async def _commit(self, args: list[str]) -> str:
        amend = "--amend" in args
        args = [a for a in args if a != "--amend"]
        if len(args) < 2:
            return "Usage: commit [--amend] <changelist|-s> <message>"
        message = " ".join(args[1:])
        if args[0] == _SELECTED:
            result = await self._manager.commit_files(
                [f.id for f in self._manager.selected_files()], message, amend=amend
            )
            return formatter.format_result(result)
        view = self._changelist(args[0])
        if view is None:
            return f"❌ No changelist {args[0]}"
        result = await self._manager.commit_changelist(view.id, message, amend=amend)
        return formatter.format_result(result)

    async def _revert(self, ref: str) -> str:
        file_ids = self._file_ids_for(ref)
        if file_ids is None:
            return f"❌ No changelist {ref}"
        result = await self._manager.revert_files(file_ids)
        return formatter.format_result(result)

    async def _stash(self, ref: str, message: str | None) -> str:
        file_ids = self._file_ids_for(ref)
        if file_ids is None:
            return f"❌ No changelist {ref}"
        result = await self._manager.stash_files(file_ids, message)
        return formatter.format_result(result)
