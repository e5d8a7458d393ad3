"""Story file navigation shared by the queue runner and the auto-write loop."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from novelpilot.core.contracts.exceptions import ParentDirectoryMissingError
from novelpilot.core.contracts.workspace import FileStore

_LOG = logging.getLogger(__name__)

STORIES_PREFIX = "stories/"

_CHAPTER_FILE_RE = re.compile(r"^chapter-(\d+)([^.]*)\.(md|txt)$", re.IGNORECASE)
_VOLUME_DIR_RE = re.compile(r"^(.*/)?vol-(\d+)$", re.IGNORECASE)


def _normalize(path: str) -> str:
    return path.replace("\\", "/")


def next_chapter_path(current_path: str, files: Iterable[str]) -> str | None:
    """Path of the chapter after *current_path*, or ``None`` if it is not a chapter file.

    The chapter number keeps its zero padding. An existing file in the same
    directory wins, then any existing file of that name elsewhere (volume
    directories first); otherwise the chapter opens the next ``vol-N``
    directory when the current one is a volume, or stays beside the current file.
    """
    known = {_normalize(path) for path in files}
    normalized = _normalize(current_path)
    directory, _, filename = normalized.rpartition("/")
    match = _CHAPTER_FILE_RE.match(filename)
    if match is None:
        return None
    digits, suffix, ext = match.groups()
    next_file = f"chapter-{int(digits) + 1:0{len(digits)}d}{suffix}.{ext}"
    same_dir = f"{directory}/{next_file}" if directory else next_file
    if same_dir in known:
        return same_dir

    elsewhere = sorted(path for path in known if path == next_file or path.endswith(f"/{next_file}"))
    if elsewhere:
        return next((path for path in elsewhere if path.startswith("stories/vol-")), elsewhere[0])

    volume = _VOLUME_DIR_RE.match(directory)
    if volume is not None:
        prefix, number = volume.group(1) or "", volume.group(2)
        return f"{prefix}vol-{int(number) + 1:0{len(number)}d}/{next_file}"
    return same_dir


async def ensure_story_file(store: FileStore, path: str) -> str | None:
    """Create *path* under ``stories/`` if needed; ``None`` for paths outside it."""
    normalized = _normalize(path).strip()
    if not normalized.startswith(STORIES_PREFIX):
        return None
    if await store.exists(normalized):
        return normalized
    try:
        await store.create_file(normalized)
    except ParentDirectoryMissingError:
        parent = normalized.rpartition("/")[0]
        _LOG.debug("creating missing directory %s", parent)
        await store.create_dir(parent)
        await store.create_file(normalized)
    return normalized


async def ensure_next_chapter(store: FileStore, current_path: str) -> str | None:
    candidate = next_chapter_path(current_path, await store.list_files())
    if candidate is None:
        return None
    return await ensure_story_file(store, candidate)
