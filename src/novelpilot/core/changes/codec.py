"""Import change-set payloads produced by a model backend.

Backends report one change set spanning several files. Review works per file,
so each file becomes its own ``ChangeSet``; ids get a ``:N`` suffix when the
payload covers more than one file.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Any

from novelpilot.core.contracts.changes import (
    ChangeSet,
    ChangeSetStats,
    ChangeSetStatus,
    Modification,
    ModificationStatus,
    ModificationType,
)


@dataclass(frozen=True)
class ImportedChangeSet:
    change_set: ChangeSet
    original_content: str


def _as_line(value: Any, default: int) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return int(math.floor(number))


def _enum_value(enum_type: type[Any], raw: Any, default: Any) -> Any:
    try:
        return enum_type(raw)
    except (TypeError, ValueError):
        return default


def _first(record: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in record:
            return record[key]
    return None


def _parse_modification(raw: Any, *, fallback_id: str) -> Modification | None:
    if not isinstance(raw, dict):
        return None
    line_start = max(1, _as_line(_first(raw, "lineStart", "line_start"), 1))
    line_end = max(line_start, _as_line(_first(raw, "lineEnd", "line_end"), line_start))
    original_text = _first(raw, "originalText", "original_text")
    modified_text = _first(raw, "modifiedText", "modified_text")
    raw_id = raw.get("id")
    return Modification(
        id=raw_id if isinstance(raw_id, str) and raw_id else fallback_id,
        type=_enum_value(ModificationType, raw.get("type"), ModificationType.MODIFY),
        line_start=line_start,
        line_end=line_end,
        original_text=original_text if isinstance(original_text, str) else None,
        modified_text=modified_text if isinstance(modified_text, str) else None,
        status=_enum_value(ModificationStatus, raw.get("status"), ModificationStatus.PENDING),
    )


def _import_stats(modifications: list[Modification]) -> ChangeSetStats:
    stats = ChangeSetStats()
    for mod in modifications:
        if mod.type in (ModificationType.ADD, ModificationType.MODIFY):
            stats.additions += 1
        if mod.type in (ModificationType.DELETE, ModificationType.MODIFY):
            stats.deletions += 1
    return stats


def parse_change_set_payload(raw: Any) -> list[ImportedChangeSet]:
    if not isinstance(raw, dict) or not isinstance(raw.get("files"), list):
        return []

    base_id = raw.get("id") if isinstance(raw.get("id"), str) and raw.get("id") else None
    timestamp = raw.get("timestamp")
    if not isinstance(timestamp, int) or isinstance(timestamp, bool):
        timestamp = int(time.time() * 1000)
    if base_id is None:
        base_id = f"changeset-{timestamp}"

    files: list[Any] = raw["files"]
    imported: list[ImportedChangeSet] = []
    for file_index, file in enumerate(files):
        if not isinstance(file, dict):
            continue
        file_path = _first(file, "filePath", "file_path")
        if not isinstance(file_path, str) or not file_path:
            continue
        original_content = _first(file, "originalContent", "original_content")
        raw_modifications = file.get("modifications")
        modifications = [
            mod
            for mod_index, entry in enumerate(raw_modifications if isinstance(raw_modifications, list) else [])
            if (mod := _parse_modification(entry, fallback_id=f"{base_id}-mod-{file_index}-{mod_index}")) is not None
        ]
        change_set = ChangeSet(
            id=f"{base_id}:{file_index + 1}" if len(files) > 1 else base_id,
            timestamp=timestamp,
            file_path=file_path.replace("\\", "/"),
            status=_enum_value(ChangeSetStatus, file.get("status"), ChangeSetStatus.PENDING),
            stats=_import_stats(modifications),
            modifications=modifications,
        )
        imported.append(
            ImportedChangeSet(
                change_set=change_set,
                original_content=original_content if isinstance(original_content, str) else "",
            )
        )
    return imported
