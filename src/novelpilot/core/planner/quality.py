"""Heuristic chapter quality gate."""

from __future__ import annotations

import logging
import re

from novelpilot.core.contracts.exceptions import WorkspaceError
from novelpilot.core.contracts.quality import QualityValidator, QualityVerdict
from novelpilot.core.contracts.task import Task
from novelpilot.core.contracts.workspace import FileStore

_LOG = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")

MIN_CHAPTER_CHARS = 600
TARGET_RATIO = 0.42
PLACEHOLDER_TOKENS = ("todo", "lorem", "xxx", "[待写]", "待补全", "待完善", "待续")
HOOK_MARKER = "钩子"
HOOK_ENDINGS = frozenset("?!.？！。…")
HOOK_TAIL_CHARS = 80
OPENING_CHARS = 140
OPENING_MIN_CHARS = 80


def compact(text: str) -> str:
    return _WHITESPACE_RE.sub("", text)


def count_chars(text: str) -> int:
    """Chapter length as non-whitespace characters."""
    return len(compact(text))


class HeuristicQualityValidator(QualityValidator):
    """Checks a finished task against its target file, failing on the first problem found."""

    def __init__(self, store: FileStore) -> None:
        self._store = store

    async def validate(self, task: Task, generated_text: str, task_pool: list[Task]) -> QualityVerdict:
        text = generated_text.strip()
        if not text:
            return QualityVerdict.failed("AI returned empty content")
        if f"TASK_DONE: {task.id}" not in text:
            return QualityVerdict.failed(f"Missing completion tag TASK_DONE: {task.id}")

        try:
            content = await self._store.read(task.scope)
        except WorkspaceError:
            return QualityVerdict.failed(f"target file is missing or unreadable: {task.scope}")

        length = count_chars(content)
        minimum = max(MIN_CHAPTER_CHARS, int(task.target_words * TARGET_RATIO))
        if length < minimum:
            return QualityVerdict.failed(f"file content is too short ({length}/{minimum})")

        lowered = content.lower()
        if any(token in lowered for token in PLACEHOLDER_TOKENS):
            return QualityVerdict.failed("chapter contains placeholder text")

        if content.strip() and any(HOOK_MARKER in check for check in task.acceptance_checks):
            if not HOOK_ENDINGS.intersection(content[-HOOK_TAIL_CHARS:]):
                return QualityVerdict.failed("chapter ending lacks a valid hook/closure sentence")

        if await self._duplicates_dependency(task, content, task_pool):
            return QualityVerdict.failed("chapter opening is highly duplicated from dependency task")
        return QualityVerdict.passed()

    async def _duplicates_dependency(self, task: Task, content: str, task_pool: list[Task]) -> bool:
        if not task.depends_on:
            return False
        dependency = next((item for item in task_pool if item.id == task.depends_on[0]), None)
        if dependency is None or dependency.scope == task.scope:
            return False
        try:
            previous = await self._store.read(dependency.scope)
        except WorkspaceError as exc:
            _LOG.debug("skipping opening comparison with %s: %s", dependency.scope, exc)
            return False
        head = compact(content)[:OPENING_CHARS]
        previous_head = compact(previous)[:OPENING_CHARS]
        return len(head) > OPENING_MIN_CHARS and len(previous_head) > OPENING_MIN_CHARS and head == previous_head
