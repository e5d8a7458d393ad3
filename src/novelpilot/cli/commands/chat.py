"""Chat command formatting."""

from __future__ import annotations

import argparse

from novelpilot.cli.common import apply_mode_override, format_comma_or_none, resolve_config
from novelpilot.cli.progress.rich import RichWriterObserver
from novelpilot.core.contracts.config import NovelPilotConfig
from novelpilot.core.contracts.observer import WriterObserver
from novelpilot.sdk import ChatResult


def format_chat_reply(result: ChatResult) -> str:
    lines = [f"[{result.mode.value}] auto-run: {'on' if result.auto_run else 'off'}"]
    if result.stream_id is None:
        return "\n".join(lines)
    if result.cancelled:
        lines.append("(cancelled)")
    lines.append("")
    lines.append(result.output)
    if result.change_set_ids:
        lines.append("")
        lines.append(f"change sets: {format_comma_or_none(result.change_set_ids)}")
    return "\n".join(lines)


async def _chat(config: NovelPilotConfig, args: argparse.Namespace, observer: WriterObserver | None) -> ChatResult:
    import novelpilot.cli as cli

    async with await cli.NovelPilot.from_config(config, observer=observer) as pilot:
        if args.mode:
            await pilot.set_mode(config.mode)
        else:
            await pilot.restore_mode()
        pilot.open_file(args.file)
        return await pilot.send(args.text)


async def run_chat(args: argparse.Namespace) -> ChatResult:
    import novelpilot.cli as cli

    config = apply_mode_override(resolve_config(args.config), args)

    if not args.verbose:
        with RichWriterObserver() as observer:
            result = await _chat(config, args, observer)
    else:
        result = await _chat(config, args, None)

    print(cli._format_chat_reply(result))
    return result


__all__ = ["format_chat_reply", "run_chat"]
