"""Run command formatting."""

from __future__ import annotations

import argparse

from novelpilot.cli.common import apply_mode_override, format_comma_or_none, resolve_config
from novelpilot.cli.progress.rich import RichWriterObserver
from novelpilot.core.contracts.config import NovelPilotConfig
from novelpilot.core.contracts.observer import WriterObserver
from novelpilot.core.planner import QueueRunReport


def format_run_summary(report: QueueRunReport, config: NovelPilotConfig) -> str:
    lines = [
        "",
        f"novelpilot - queue run ({config.mode.value})",
        "",
        f"  Status:    {report.status}",
        f"  Completed: {len(report.completed)} ({format_comma_or_none(report.completed)})",
    ]
    if report.blocked_task_id is not None:
        lines.append(f"  Blocked:   {report.blocked_task_id}")
    lines.append("")
    return "\n".join(lines)


async def _run(config: NovelPilotConfig, args: argparse.Namespace, observer: WriterObserver | None) -> QueueRunReport:
    import novelpilot.cli as cli

    async with await cli.NovelPilot.from_config(config, observer=observer) as pilot:
        await pilot.set_mode(config.mode)
        return await pilot.run_queue(args.instruction)


async def run_queue(args: argparse.Namespace) -> QueueRunReport:
    import novelpilot.cli as cli

    config = apply_mode_override(resolve_config(args.config), args)

    if not args.verbose:
        with RichWriterObserver() as observer:
            report = await _run(config, args, observer)
    else:
        report = await _run(config, args, None)

    print(cli._format_run_summary(report, config))
    return report


__all__ = ["format_run_summary", "run_queue"]
