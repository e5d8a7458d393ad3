"""Shared CLI helpers."""

from __future__ import annotations

import argparse
from pathlib import Path

from novelpilot.core.config import DEFAULT_CONFIG_NAME
from novelpilot.core.contracts.config import NovelPilotConfig
from novelpilot.core.contracts.task import Task, TaskStatus, WriterMode


def format_comma_or_none(values: list[str]) -> str:
    if not values:
        return "none"
    return ", ".join(values)


def format_status_breakdown(tasks: list[Task]) -> str:
    parts: list[str] = []
    for status in TaskStatus:
        count = sum(1 for task in tasks if task.status is status)
        if count:
            parts.append(f"{count} {status.value}")
    return ", ".join(parts) if parts else "none"


def apply_mode_override(config: NovelPilotConfig, args: argparse.Namespace) -> NovelPilotConfig:
    mode = getattr(args, "mode", None)
    if not mode:
        return config
    return config.model_copy(update={"mode": WriterMode(mode)})


def resolve_config(path: str | None) -> NovelPilotConfig:
    """Load ``path``, else ``./novelpilot.json`` when present, else a dry-run config for the cwd."""
    import novelpilot.cli as cli

    if path is not None:
        return cli.load_config(path)
    default_path = Path.cwd() / DEFAULT_CONFIG_NAME
    if default_path.is_file():
        return cli.load_config(default_path)
    return cli.default_config(Path.cwd())
