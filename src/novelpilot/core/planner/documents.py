"""Planner workspace artifacts and their on-disk document format.

Plans and task lists are Markdown files carrying a JSON front matter block::

    ---
    { ...metadata, indent 2... }
    ---

    body

For task lists the metadata is authoritative; the Markdown body is a
human-readable checklist regenerated on every save.
"""

from __future__ import annotations

import json
import math
import re
from datetime import UTC, datetime
from typing import Any

from novelpilot.core.contracts.task import RunQueue, Task, TaskPriority, TaskStatus, WriterMode

PLANS_DIR = ".novel/plans"
TASKS_DIR = ".novel/tasks"
STATE_DIR = ".novel/state"
MASTER_PLAN_PATH = ".novel/plans/master-plan.md"
MASTER_TASKS_PATH = ".novel/tasks/master-tasks.md"
RUN_QUEUE_PATH = ".novel/tasks/run-queue.md"
SESSION_STATE_PATH = ".novel/state/session-state.json"
CONTINUITY_INDEX_PATH = ".novel/state/continuity-index.md"
PROJECT_SETTINGS_PATH = ".novel/.settings/project.json"

CONTINUITY_HEADER = "# Continuity Index\n\n用于记录角色、时间线、伏笔回收等连续性信息。"

PLAN_SUMMARY_CHARS = 2800

_HEADING_RE = re.compile(r"^#+\s+", re.MULTILINE)
_BLANK_RUN_RE = re.compile(r"\n{3,}")


def utc_now() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def to_front_matter(meta: dict[str, Any], body: str) -> str:
    return f"---\n{json.dumps(meta, ensure_ascii=False, indent=2)}\n---\n\n{body.strip()}\n"


def parse_front_matter(raw: str) -> tuple[dict[str, Any], str]:
    """Split *raw* into (metadata, body); unreadable front matter yields empty metadata."""
    normalized = raw.replace("\r\n", "\n")
    if not normalized.startswith("---\n"):
        return {}, raw
    end = normalized.find("\n---\n", 4)
    if end < 0:
        return {}, raw
    header = normalized[4:end].strip()
    body = normalized[end + 5 :].strip()
    if not header:
        return {}, body
    try:
        parsed = json.loads(header)
    except json.JSONDecodeError:
        return {}, body
    if not isinstance(parsed, dict):
        return {}, body
    return parsed, body


def clean_markdown(raw: str) -> str:
    """Strip a surrounding ``` fence the model may have wrapped its answer in."""
    text = raw.strip()
    if not text.startswith("```"):
        return text
    lines = text.split("\n")
    if len(lines) <= 2:
        return text
    if lines[0].startswith("```") and lines[-1].strip() == "```":
        return "\n".join(lines[1:-1]).strip()
    return text


def extract_plan_summary(plan_markdown: str) -> str:
    _, body = parse_front_matter(plan_markdown)
    normalized = _HEADING_RE.sub("", body.replace("\r\n", "\n"))
    normalized = _BLANK_RUN_RE.sub("\n\n", normalized).strip()
    return normalized[:PLAN_SUMMARY_CHARS]


# ----------------------------------------------------------------------
# Task lists
# ----------------------------------------------------------------------


def _number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _enum_value(enum_type: type[Any], raw: Any, default: Any) -> Any:
    try:
        return enum_type(raw)
    except (TypeError, ValueError):
        return default


def _strings(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def sanitize_task(raw: Any) -> Task | None:
    """Build a ``Task`` from a loosely-typed record, or ``None`` when it has no id or title."""
    if not isinstance(raw, dict):
        return None
    task_id = raw.get("id").strip() if isinstance(raw.get("id"), str) else ""
    title = raw.get("title").strip() if isinstance(raw.get("title"), str) else ""
    if not task_id or not title:
        return None

    status = _enum_value(TaskStatus, raw.get("status"), TaskStatus.TODO)
    priority = _enum_value(TaskPriority, raw.get("priority"), TaskPriority.MEDIUM)

    target_words = _number(raw.get("target_words"))
    volume = _number(raw.get("volume"))
    chapter_index = _number(raw.get("chapter_index"))
    retries = _number(raw.get("retries"))
    scope = raw.get("scope").strip() if isinstance(raw.get("scope"), str) else ""
    task_prompt = raw.get("task_prompt")
    timeline = raw.get("timeline_window")

    return Task(
        id=task_id,
        title=title,
        status=status,
        priority=priority,
        depends_on=_strings(raw.get("depends_on")),
        target_words=max(500, round(target_words)) if target_words is not None else 2000,
        scope=scope or f"stories/{task_id}.md",
        volume=max(1, math.floor(volume)) if volume is not None else 1,
        chapter_index=max(1, math.floor(chapter_index)) if chapter_index is not None else 1,
        acceptance_checks=_strings(raw.get("acceptance_checks")),
        arc_targets=_strings(raw.get("arc_targets")),
        foreshadow_refs=_strings(raw.get("foreshadow_refs")),
        timeline_window=timeline if isinstance(timeline, str) else "global",
        task_prompt=task_prompt.strip() if isinstance(task_prompt, str) else "",
        retries=max(0, math.floor(retries)) if retries is not None else 0,
        last_error=raw.get("last_error") if isinstance(raw.get("last_error"), str) else None,
        completed_at=raw.get("completed_at") if isinstance(raw.get("completed_at"), str) else None,
    )


def serialize_task_list(mode: WriterMode, tasks: list[Task], doc_id: str, title: str) -> str:
    meta = {
        "id": doc_id,
        "mode": mode.value,
        "updated_at": utc_now(),
        "total": len(tasks),
        "tasks": [task.model_dump(mode="json", exclude_none=True) for task in tasks],
    }
    lines = [f"# {title}", "", f"总任务数：{len(tasks)}", ""]
    for task in tasks:
        checked = "x" if task.status is TaskStatus.DONE else " "
        lines.append(
            f"- [{checked}] {task.id} {task.title} ({task.scope}, {task.target_words}字, {task.status.value})"
        )
    return to_front_matter(meta, "\n".join(lines))


def parse_task_list(raw: str) -> RunQueue:
    meta, _ = parse_front_matter(raw)
    mode = _enum_value(WriterMode, meta.get("mode"), None)
    raw_tasks = meta.get("tasks") if isinstance(meta.get("tasks"), list) else []
    tasks = [task for task in (sanitize_task(item) for item in raw_tasks) if task is not None]
    return RunQueue(mode=mode, tasks=tasks)
