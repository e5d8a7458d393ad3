"""Status command formatting."""

from __future__ import annotations

import argparse

from novelpilot.cli.common import format_status_breakdown, resolve_config
from novelpilot.core.contracts.config import NovelPilotConfig
from novelpilot.core.planner import select_next_task
from novelpilot.sdk import WorkspaceStatus

_TASK_MARKS = {"done": "x", "running": ">", "blocked": "!", "retry": "~", "todo": " "}


def format_status_summary(status: WorkspaceStatus, config: NovelPilotConfig) -> str:
    session = status.session
    tasks = status.queue.tasks
    next_task = select_next_task(tasks)
    lines = [
        "",
        f"novelpilot - status ({session.session_id})",
        "",
        f"  Workspace: {config.workspace_root}",
        f"  Mode:      {session.mode.value}",
        f"  Auto-run:  {'on' if session.auto_run else 'off'}",
        f"  Plan:      {'present' if status.has_master_plan else 'missing'}",
        f"  Queue:     {status.queue.mode.value if status.queue.mode else 'none'}",
        f"  Tasks:     {len(tasks)} total ({format_status_breakdown(tasks)})",
        f"  Next:      {next_task.id if next_task is not None else 'none'}",
    ]
    if session.current_task_id:
        lines.append(f"  Current:   {session.current_task_id}")
    if session.last_error:
        lines.append(f"  Error:     {session.last_error}")
    if tasks:
        lines.append("")
        for task in tasks:
            mark = _TASK_MARKS.get(task.status.value, " ")
            suffix = f" - {task.last_error}" if task.last_error else ""
            lines.append(f"  [{mark}] {task.id} {task.title} ({task.scope}){suffix}")
    lines.append("")
    return "\n".join(lines)


async def run_status(args: argparse.Namespace) -> WorkspaceStatus:
    import novelpilot.cli as cli

    config = resolve_config(args.config)
    async with await cli.NovelPilot.from_config(config) as pilot:
        status = await pilot.status()

    print(cli._format_status_summary(status, config))
    return status


__all__ = ["format_status_summary", "run_status"]
