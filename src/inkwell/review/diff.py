"""Line diffs shown on the review surface."""

from __future__ import annotations

import difflib

from .models import DiffStats


def render_diff(original: str, candidate: str, *, context: int = 3) -> str:
    """Return a unified diff of ``original`` against ``candidate`` (empty when equal)."""

    diff = difflib.unified_diff(
        original.splitlines(keepends=True),
        candidate.splitlines(keepends=True),
        fromfile="original",
        tofile="suggestion",
        lineterm="",
        n=max(0, int(context)),
    )
    return "\n".join(line.rstrip("\r\n") for line in diff)


def diff_stats(original: str, candidate: str) -> DiffStats:
    """Count lines only in ``candidate`` (added) and only in ``original`` (removed)."""

    added = removed = 0
    for line in difflib.ndiff(original.splitlines(), candidate.splitlines()):
        if line.startswith("+ "):
            added += 1
        elif line.startswith("- "):
            removed += 1
    return DiffStats(added=added, removed=removed)


__all__ = ["DiffStats", "diff_stats", "render_diff"]
