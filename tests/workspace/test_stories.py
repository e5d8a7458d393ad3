from __future__ import annotations

import pytest

from novelpilot.core.workspace.stories import ensure_next_chapter, ensure_story_file, next_chapter_path
from tests.fakes.store import MemoryFileStore


@pytest.mark.parametrize(
    ("current", "files", "expected"),
    [
        ("stories/chapter-0009.md", [], "stories/chapter-0010.md"),
        ("stories/chapter-9.txt", [], "stories/chapter-10.txt"),
        ("stories/chapter-002-draft.md", [], "stories/chapter-003-draft.md"),
        ("stories/vol-01/chapter-0012.md", [], "stories/vol-02/chapter-0013.md"),
        ("stories/vol-01/chapter-0012.md", ["stories/vol-01/chapter-0013.md"], "stories/vol-01/chapter-0013.md"),
        (
            "stories/chapter-0012.md",
            ["stories/extra/chapter-0013.md", "stories/vol-02/chapter-0013.md"],
            "stories/vol-02/chapter-0013.md",
        ),
        ("stories\\chapter-0001.md", [], "stories/chapter-0002.md"),
    ],
)
def test_next_chapter_path(current: str, files: list[str], expected: str) -> None:
    assert next_chapter_path(current, files) == expected


def test_non_chapter_files_have_no_successor() -> None:
    assert next_chapter_path("stories/prologue.md", []) is None
    assert next_chapter_path("stories/chapter-0001.json", []) is None


@pytest.mark.asyncio
async def test_ensure_story_file_creates_missing_directories() -> None:
    store = MemoryFileStore()

    opened = await ensure_story_file(store, "stories/vol-03/chapter-0040.md")

    assert opened == "stories/vol-03/chapter-0040.md"
    assert store.files[opened] == ""
    assert "stories/vol-03" in store.dirs


@pytest.mark.asyncio
async def test_ensure_story_file_keeps_existing_content_and_ignores_outside_paths() -> None:
    store = MemoryFileStore({"stories/chapter-0001.md": "已写"})

    assert await ensure_story_file(store, " stories/chapter-0001.md ") == "stories/chapter-0001.md"
    assert store.files["stories/chapter-0001.md"] == "已写"
    assert await ensure_story_file(store, "notes/todo.md") is None


@pytest.mark.asyncio
async def test_ensure_next_chapter_opens_the_next_volume() -> None:
    store = MemoryFileStore({"stories/vol-01/chapter-0024.md": "结尾"})

    opened = await ensure_next_chapter(store, "stories/vol-01/chapter-0024.md")

    assert opened == "stories/vol-02/chapter-0025.md"
    assert opened in store.files
