"""Plan command formatting."""

from __future__ import annotations

import argparse

from novelpilot.cli.common import apply_mode_override, format_status_breakdown, resolve_config
from novelpilot.cli.progress.rich import RichWriterObserver
from novelpilot.core.contracts.config import NovelPilotConfig
from novelpilot.core.contracts.exceptions import PlannerError
from novelpilot.core.contracts.observer import WriterObserver
from novelpilot.core.contracts.task import Task, WriterMode
from novelpilot.core.planner.documents import MASTER_PLAN_PATH, RUN_QUEUE_PATH


def format_plan_summary(tasks: list[Task], config: NovelPilotConfig) -> str:
    volumes = sorted({task.volume for task in tasks})
    total_words = sum(task.target_words for task in tasks)
    lines = [
        "",
        f"novelpilot - plan ready ({config.mode.value})",
        "",
        f"  Workspace: {config.workspace_root}",
        f"  Plan:      {MASTER_PLAN_PATH}",
        f"  Queue:     {RUN_QUEUE_PATH}",
        "",
        f"  Tasks:     {len(tasks)} total ({format_status_breakdown(tasks)})",
        f"  Volumes:   {len(volumes)}",
        f"  Words:     {total_words}",
    ]
    if tasks:
        lines.append(f"  First:     {tasks[0].id} {tasks[0].title}")
    lines.append("")
    return "\n".join(lines)


async def _prepare(
    config: NovelPilotConfig, args: argparse.Namespace, observer: WriterObserver | None
) -> list[Task]:
    import novelpilot.cli as cli

    async with await cli.NovelPilot.from_config(config, observer=observer) as pilot:
        await pilot.set_mode(config.mode)
        return await pilot.prepare_plan(instruction=args.instruction, target_words=args.target_words)


async def run_plan(args: argparse.Namespace) -> list[Task]:
    import novelpilot.cli as cli

    config = apply_mode_override(resolve_config(args.config), args)
    if config.mode is WriterMode.NORMAL:
        raise PlannerError("normal mode has no plan; pass --mode plan or --mode spec")

    if not args.verbose:
        with RichWriterObserver() as observer:
            tasks = await _prepare(config, args, observer)
    else:
        tasks = await _prepare(config, args, None)

    print(cli._format_plan_summary(tasks, config))
    return tasks


__all__ = ["format_plan_summary", "run_plan"]
