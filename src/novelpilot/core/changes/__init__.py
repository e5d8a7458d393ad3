"""Change-set diff engine."""

from novelpilot.core.changes.codec import ImportedChangeSet, parse_change_set_payload
from novelpilot.core.changes.diff import (
    apply_modifications,
    compute_diff,
    derive_change_set_status,
    diff_to_modifications,
)
from novelpilot.core.changes.edits import FileEdit, build_proposed_content, parse_file_edits
from novelpilot.core.changes.manager import ChangeSetManager

__all__ = [
    "ChangeSetManager",
    "FileEdit",
    "ImportedChangeSet",
    "apply_modifications",
    "build_proposed_content",
    "compute_diff",
    "derive_change_set_status",
    "diff_to_modifications",
    "parse_change_set_payload",
    "parse_file_edits",
]
