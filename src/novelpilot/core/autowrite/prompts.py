"""Prompts sent by the auto-write loop."""

from __future__ import annotations

from novelpilot.core.contracts.task import Task, WriterMode

_MODE_GUARDS = {
    WriterMode.NORMAL: "Use current chapter context and referenced files only.",
    WriterMode.PLAN: "Follow the major outline and chapter pacing strictly.",
    WriterMode.SPEC: "Follow the detailed outline tasks and beat continuity strictly.",
}


def completion_check_prompt(task: Task, path: str, target: int) -> str:
    return (
        "Task completion check.\n"
        f"Task: {task.id} {task.title}\n"
        f"Target file: #file:{path}\n"
        f"Target words: {target}\n"
        f"If task is complete, output exactly: TASK_DONE: {task.id}\n"
        "Then provide a 2-3 sentence summary.\n"
        "If not complete, first apply missing edits to file, then output TASK_DONE tag and summary."
    )


def write_round_prompt(
    mode: WriterMode,
    path: str,
    current: int,
    target: int,
    chunk_chars: int,
    task: Task | None,
) -> str:
    lines = [
        "Auto long-form writing task.",
        f"Current chapter file: #file:{path}",
        f"Current length: {current} chars.",
        f"Mode: {mode.value}.",
    ]
    if target > 0:
        lines.append(f"Target length: {target} chars.")
    if task is not None:
        lines.append(f"Task: {task.id} {task.title}")
    lines.extend(
        [
            f"Write and apply about {chunk_chars} new chars directly into the file.",
            "Requirements:",
            "1) Must use file-edit tool to modify project files directly (no insert button flow).",
            "2) Keep plot logic consistent with existing chapters and avoid contradictions.",
            f"3) {_MODE_GUARDS[mode]}",
            "4) No duplicate paragraphs; continue exactly from the current ending.",
            "5) Return a one-line progress summary after applying edits.",
        ]
    )
    return "\n".join(lines)
