"""Pure functions to render changelist data as terminal text."""

from changekeeper.changelists.models import ChangelistView, FileItem, Hunk, Partition
from changekeeper.vcs.models import VcsResult

_STATUS_LETTER = {
    "modified": "M",
    "added": "A",
    "deleted": "D",
    "renamed": "R",
    "untracked": "?",
}


def format_file(file: FileItem) -> str:
    marker = "*" if file.is_selected else " "
    letter = _STATUS_LETTER.get(file.status, "?")
    line = f"  {marker} {letter} {file.path}"
    if file.hunks:
        noun = "hunk" if len(file.hunks) == 1 else "hunks"
        line += f"  ({len(file.hunks)} {noun})"
    if file.is_staged:
        line += "  [staged]"
    return line


def format_changelist(view: ChangelistView) -> str:
    arrow = "▾" if view.is_expanded else "▸"
    header = f"{arrow} {view.name} [{len(view.files)}]"
    if view.is_active:
        header += " (active)"
    lines = [header]
    if view.description and not view.is_default:
        lines.append(f"    {view.description}")
    if view.is_expanded:
        lines.extend(format_file(f) for f in view.files)
    return "\n".join(lines)


def format_partition(partition: Partition) -> str:
    """Render every changelist, then the unversioned bucket if it has files."""
    blocks = [format_changelist(view) for view in partition.changelists]
    if partition.unversioned:
        lines = [f"Unversioned Files [{len(partition.unversioned)}]"]
        lines.extend(format_file(f) for f in partition.unversioned)
        blocks.append("\n".join(lines))
    if not partition.all_files():
        blocks.append("✨ Working tree clean")
    return "\n\n".join(blocks)


def format_hunk(hunk: Hunk, changelist_name: str | None = None) -> str:
    header = (
        f"@@ -{hunk.old_start},{hunk.old_lines} "
        f"+{hunk.new_start},{hunk.new_lines} @@ {hunk.file_path}"
    )
    if changelist_name:
        header += f"  → {changelist_name}"
    return header


def format_result(result: VcsResult, emoji: str = "") -> str:
    """Format a VcsResult with success/failure indicator."""
    icon = emoji or ("✅" if result.success else "❌")
    text = f"{icon} {result.message}"
    if result.details:
        text += f"\n{result.details}"
    return text


def format_help() -> str:
    return (
        "Commands:\n"
        "\n"
        "status                          Show changelists\n"
        "refresh                         Re-read the working tree now\n"
        "new <name> [description]        Create a changelist\n"
        "rm <changelist>                 Delete a changelist\n"
        "rename <changelist> <name>      Rename a changelist\n"
        "active <changelist>             Set the active changelist\n"
        "move <path> <changelist>        Move a file to a changelist\n"
        "move all <from> <to>            Move hunkless files between changelists\n"
        "unversion <path>                Move a file to Unversioned Files\n"
        "hunk <path> <line> <changelist> Move the hunk at a line\n"
        "select <path>...                Toggle selection\n"
        "select all [changelist]         Select every file\n"
        "select none                     Clear the selection\n"
        "commit [--amend] <changelist|-s> <message>\n"
        "                                Commit a changelist or the selection\n"
        "revert <changelist|-s>          Discard changes\n"
        "stash <changelist|-s> [message] Stash changes\n"
        "help                            This message"
    )
