"""Workspace file store implementations."""

from novelpilot.core.workspace.local import LocalFileStore, normalize_relative_path
from novelpilot.core.workspace.stories import ensure_next_chapter, ensure_story_file, next_chapter_path

__all__ = [
    "LocalFileStore",
    "ensure_next_chapter",
    "ensure_story_file",
    "next_chapter_path",
    "normalize_relative_path",
]
