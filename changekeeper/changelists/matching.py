"""Decide whether a freshly parsed hunk continues a previously tracked one.

Hunk ids are positional, so an edit that shifts line numbers produces a new
id for what the user still thinks of as the same change. The rules below are
a heuristic, not an identity proof: two unrelated edits that land within the
threshold of each other are treated as one.
"""

from collections.abc import Iterable

from changekeeper.changelists.models import Hunk

DEFAULT_PROXIMITY_THRESHOLD = 3


def _ranges_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    return start_a <= end_b and end_a >= start_b


def is_continuation(
    new: Hunk, previous: Hunk, *, threshold: int = DEFAULT_PROXIMITY_THRESHOLD
) -> bool:
    if _ranges_overlap(new.old_start, new.old_end, previous.old_start, previous.old_end):
        return True
    if _ranges_overlap(new.new_start, new.new_end, previous.new_start, previous.new_end):
        return True
    return any(
        abs(a - b) <= threshold
        for a, b in (
            (new.old_start, previous.old_start),
            (new.old_end, previous.old_end),
            (new.new_start, previous.new_start),
            (new.new_end, previous.new_end),
        )
    )


def match_continuation(
    new: Hunk,
    candidates: Iterable[Hunk],
    *,
    threshold: int = DEFAULT_PROXIMITY_THRESHOLD,
) -> Hunk | None:
    """Return the first candidate that ``new`` continues, in candidate order."""
    for candidate in candidates:
        if is_continuation(new, candidate, threshold=threshold):
            return candidate
    return None
