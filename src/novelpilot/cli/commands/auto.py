"""Auto-write command formatting."""

from __future__ import annotations

import argparse

from novelpilot.cli.common import apply_mode_override, resolve_config
from novelpilot.cli.progress.rich import RichWriterObserver
from novelpilot.core.autowrite import AutoWriteReport
from novelpilot.core.contracts.config import NovelPilotConfig
from novelpilot.core.contracts.observer import WriterObserver


def format_auto_summary(report: AutoWriteReport, config: NovelPilotConfig) -> str:
    lines = [
        "",
        f"novelpilot - auto-write ({config.mode.value})",
        "",
        f"  Status:    {report.status}",
        f"  Rounds:    {report.rounds}",
        f"  Advances:  {report.chapter_advances}",
        f"  File:      {report.final_path or 'none'}",
        "",
    ]
    return "\n".join(lines)


async def _auto(config: NovelPilotConfig, args: argparse.Namespace, observer: WriterObserver | None) -> AutoWriteReport:
    import novelpilot.cli as cli

    async with await cli.NovelPilot.from_config(config, observer=observer) as pilot:
        await pilot.set_mode(config.mode)
        return await pilot.auto_write(args.file)


async def run_auto(args: argparse.Namespace) -> AutoWriteReport:
    import novelpilot.cli as cli

    config = apply_mode_override(resolve_config(args.config), args)

    if not args.verbose:
        with RichWriterObserver() as observer:
            report = await _auto(config, args, observer)
    else:
        report = await _auto(config, args, None)

    print(cli._format_auto_summary(report, config))
    return report


__all__ = ["format_auto_summary", "run_auto"]
