"""Parse unified diff text into positional hunk records."""

import base64
import re

from changekeeper.changelists.models import Hunk

_HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
_BODY_PREFIXES = ("+", "-", " ", "\\")


def file_id(path: str) -> str:
    """Deterministic, content-free id for a path."""
    return base64.urlsafe_b64encode(path.encode()).decode("ascii")


def hunk_id(path: str, old_start: int, new_start: int) -> str:
    """Positional id; changes whenever lines above the hunk shift."""
    return base64.urlsafe_b64encode(f"{path}:{old_start}:{new_start}".encode()).decode(
        "ascii"
    )


def file_name(path: str) -> str:
    return path.rsplit("/", 1)[-1] or path


def parse_hunks(diff_text: str, file_path: str, *, staged: bool = False) -> list[Hunk]:
    """Split one file's diff into hunks; headerless text yields []."""
    hunks: list[Hunk] = []
    header: tuple[int, int, int, int] | None = None
    body: list[str] = []

    def _flush() -> None:
        if header is None:
            return
        old_start, old_lines, new_start, new_lines = header
        hunks.append(
            Hunk(
                id=hunk_id(file_path, old_start, new_start),
                file_path=file_path,
                old_start=old_start,
                old_lines=old_lines,
                new_start=new_start,
                new_lines=new_lines,
                content="\n".join(body),
                is_staged=staged,
            )
        )

    for line in diff_text.splitlines():
        match = _HUNK_HEADER_RE.match(line)
        if match:
            _flush()
            header = (
                int(match.group(1)),
                int(match.group(2)) if match.group(2) is not None else 1,
                int(match.group(3)),
                int(match.group(4)) if match.group(4) is not None else 1,
            )
            body = []
        elif header is not None and line.startswith(_BODY_PREFIXES):
            body.append(line)

    _flush()
    return hunks
