"""Line-level diff, apply and status derivation for change sets.

The diff is computed character-by-character over line-encoded text: every
distinct line is mapped to a single character, the two encoded strings are
diffed, and each run is decoded back into a line-numbered change record.
All line numbers refer to the *original* text, so applying every record to
the original reproduces the modified text exactly.
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from difflib import SequenceMatcher

from novelpilot.core.contracts.changes import (
    ChangeSetStats,
    ChangeSetStatus,
    DiffChange,
    DiffResult,
    DiffStats,
    Modification,
    ModificationStatus,
    ModificationType,
)
from novelpilot.core.contracts.exceptions import ChangeSetError


def split_lines(text: str | None) -> list[str]:
    return (text or "").split("\n")


def _lines_to_chars(original_lines: list[str], modified_lines: list[str]) -> tuple[str, str]:
    table: dict[str, str] = {}

    def encode(lines: list[str]) -> str:
        chars: list[str] = []
        for line in lines:
            code = table.get(line)
            if code is None:
                code = chr(len(table))
                table[line] = code
            chars.append(code)
        return "".join(chars)

    return encode(original_lines), encode(modified_lines)


def _merge_changes(changes: list[DiffChange]) -> list[DiffChange]:
    merged: list[DiffChange] = []
    index = 0
    while index < len(changes):
        current = changes[index]
        following = changes[index + 1] if index + 1 < len(changes) else None
        if (
            following is not None
            and current.type is ModificationType.DELETE
            and following.type is ModificationType.ADD
            and abs(current.line_start - following.line_start) <= 1
        ):
            merged.append(
                DiffChange(
                    type=ModificationType.MODIFY,
                    line_start=current.line_start,
                    line_end=current.line_end,
                    original_text=current.original_text,
                    modified_text=following.modified_text,
                )
            )
            index += 2
            continue
        merged.append(current)
        index += 1
    return merged


def _span(change: DiffChange) -> int:
    return change.line_end - change.line_start + 1


def compute_diff(original: str, modified: str) -> DiffResult:
    original_lines = split_lines(original)
    modified_lines = split_lines(modified)
    encoded_original, encoded_modified = _lines_to_chars(original_lines, modified_lines)
    matcher = SequenceMatcher(None, encoded_original, encoded_modified, autojunk=False)

    changes: list[DiffChange] = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            continue
        if tag in ("delete", "replace"):
            changes.append(
                DiffChange(
                    type=ModificationType.DELETE,
                    line_start=i1 + 1,
                    line_end=i2,
                    original_text="\n".join(original_lines[i1:i2]),
                )
            )
        if tag in ("insert", "replace"):
            # A replaced block is re-inserted at the slot its deletion opened.
            position = i1 if tag == "replace" else i2
            changes.append(
                DiffChange(
                    type=ModificationType.ADD,
                    line_start=position + 1,
                    line_end=position + (j2 - j1),
                    modified_text="\n".join(modified_lines[j1:j2]),
                )
            )

    merged = _merge_changes(changes)
    stats = DiffStats()
    for change in merged:
        if change.type is ModificationType.ADD:
            stats.additions += _span(change)
        elif change.type is ModificationType.DELETE:
            stats.deletions += _span(change)
        else:
            stats.modifications += _span(change)
    return DiffResult(changes=merged, stats=stats)


def diff_to_modifications(result: DiffResult, *, timestamp: int | None = None) -> list[Modification]:
    stamp = timestamp if timestamp is not None else int(time.time() * 1000)
    return [
        Modification(
            id=f"mod-{stamp}-{index}",
            type=change.type,
            line_start=change.line_start,
            line_end=change.line_end,
            original_text=change.original_text,
            modified_text=change.modified_text,
            status=ModificationStatus.PENDING,
        )
        for index, change in enumerate(result.changes)
    ]


def _apply_order(modification: Modification) -> tuple[int, bool]:
    # At equal line_start a range edit must land before an insertion at the same slot.
    return (modification.line_start, modification.type is not ModificationType.ADD)


def apply_modifications(original: str, modifications: Iterable[Modification]) -> str:
    """Apply the accepted *modifications* to *original*; others are ignored."""
    accepted = [mod for mod in modifications if mod.status is ModificationStatus.ACCEPTED]
    lines = split_lines(original)
    for mod in sorted(accepted, key=_apply_order, reverse=True):
        start = mod.line_start - 1
        if mod.type is ModificationType.ADD:
            if start > len(lines):
                raise ChangeSetError(f"modification {mod.id} inserts past end of text (line {mod.line_start})")
            lines[start:start] = split_lines(mod.modified_text)
            continue
        if mod.line_end < mod.line_start or mod.line_end > len(lines):
            raise ChangeSetError(
                f"modification {mod.id} targets lines {mod.line_start}-{mod.line_end} of {len(lines)}"
            )
        if mod.type is ModificationType.DELETE:
            del lines[start : mod.line_end]
        else:
            lines[start : mod.line_end] = split_lines(mod.modified_text)
    return "\n".join(lines)


def derive_change_set_status(modifications: list[Modification]) -> ChangeSetStatus:
    statuses = {mod.status for mod in modifications}
    if not statuses or statuses == {ModificationStatus.PENDING}:
        return ChangeSetStatus.PENDING
    if statuses == {ModificationStatus.ACCEPTED}:
        return ChangeSetStatus.ACCEPTED
    if statuses == {ModificationStatus.REJECTED}:
        return ChangeSetStatus.REJECTED
    return ChangeSetStatus.PARTIAL


def change_set_stats(modifications: list[Modification]) -> ChangeSetStats:
    stats = ChangeSetStats()
    for mod in modifications:
        if mod.type in (ModificationType.ADD, ModificationType.MODIFY):
            stats.additions += len(split_lines(mod.modified_text))
        if mod.type in (ModificationType.DELETE, ModificationType.MODIFY):
            stats.deletions += mod.line_end - mod.line_start + 1
    return stats
