"""Extract ``<file_edit>`` blocks from model output."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field

from novelpilot.core.changes.diff import apply_modifications
from novelpilot.core.contracts.changes import Modification, ModificationStatus, ModificationType

_FILE_EDIT_RE = re.compile(r'<file_edit\s+path="([^"]+)"\s*>(.*?)</file_edit>', re.DOTALL)
_REPLACE_RE = re.compile(r'<replace\s+lines="(\d+)-(\d+)"\s*>(.*?)</replace>', re.DOTALL)
_INSERT_RE = re.compile(r'<insert\s+at="(\d+)"\s*>(.*?)</insert>', re.DOTALL)
_DELETE_RE = re.compile(r'<delete\s+lines="(\d+)-(\d+)"\s*/>')


@dataclass
class FileEdit:
    """Edits the model requested for one file, in the line numbers of the current content."""

    path: str
    modifications: list[Modification] = field(default_factory=list)


def has_file_edits(text: str) -> bool:
    return "<file_edit" in text


def _parse_block(body: str, stamp: int) -> list[Modification]:
    modifications: list[Modification] = []

    def next_id() -> str:
        return f"mod-{stamp}-{len(modifications)}"

    for match in _REPLACE_RE.finditer(body):
        modifications.append(
            Modification(
                id=next_id(),
                type=ModificationType.MODIFY,
                line_start=max(1, int(match.group(1))),
                line_end=int(match.group(2)),
                modified_text=match.group(3).strip(),
            )
        )
    for match in _INSERT_RE.finditer(body):
        at = max(1, int(match.group(1)))
        modifications.append(
            Modification(
                id=next_id(),
                type=ModificationType.ADD,
                line_start=at,
                line_end=at,
                modified_text=match.group(2).strip(),
            )
        )
    for match in _DELETE_RE.finditer(body):
        modifications.append(
            Modification(
                id=next_id(),
                type=ModificationType.DELETE,
                line_start=max(1, int(match.group(1))),
                line_end=int(match.group(2)),
            )
        )
    return modifications


def parse_file_edits(text: str, *, timestamp: int | None = None) -> list[FileEdit]:
    if not has_file_edits(text):
        return []
    stamp = timestamp if timestamp is not None else int(time.time() * 1000)
    edits: list[FileEdit] = []
    for match in _FILE_EDIT_RE.finditer(text):
        path = match.group(1).strip().replace("\\", "/")
        modifications = _parse_block(match.group(2), stamp)
        if path and modifications:
            edits.append(FileEdit(path=path, modifications=modifications))
    return edits


def build_proposed_content(original: str, edit: FileEdit) -> str:
    """Content of the file once every requested edit is applied; raises ``ChangeSetError`` on bad ranges."""
    accepted = [mod.model_copy(update={"status": ModificationStatus.ACCEPTED}) for mod in edit.modifications]
    return apply_modifications(original, accepted)
