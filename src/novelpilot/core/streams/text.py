"""Stream text helpers."""

from __future__ import annotations

MAX_OVERLAP_CHARS = 4096


def overlap_remainder(existing: str, incoming: str) -> str:
    """Part of *incoming* not already present at the end of *existing*.

    Backends occasionally redeliver buffered output, so a chunk may start with
    text the stream already holds. The longest suffix of *existing* that is a
    prefix of *incoming* is dropped; a chunk that is already a suffix of
    *existing* contributes nothing.
    """
    if not incoming:
        return ""
    if not existing:
        return incoming
    if existing.endswith(incoming):
        return ""
    for overlap in range(min(len(existing), len(incoming), MAX_OVERLAP_CHARS), 0, -1):
        if existing.endswith(incoming[:overlap]):
            return incoming[overlap:]
    return incoming


def append_with_overlap(existing: str, incoming: str) -> str:
    return existing + overlap_remainder(existing, incoming)


def format_elapsed_label(seconds: float) -> str:
    total = max(0, int(seconds))
    if total < 60:
        return f"{total}s"
    minutes, remainder = divmod(total, 60)
    return f"{minutes}m {remainder}s"
