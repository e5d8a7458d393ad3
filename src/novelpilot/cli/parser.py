"""CLI parser construction."""

from __future__ import annotations

import argparse
from importlib.metadata import PackageNotFoundError, version

from novelpilot.core.config import DEFAULT_CONFIG_NAME

_MODES = ("normal", "plan", "spec")


def _package_version() -> str:
    try:
        return version("novelpilot")
    except PackageNotFoundError:
        return "0.0.0"


def _add_common_arguments(parser: argparse.ArgumentParser, *, with_mode: bool = True) -> None:
    parser.add_argument(
        "--config", default=None, help=f"Path to the config file (default: ./{DEFAULT_CONFIG_NAME} when present)"
    )
    if with_mode:
        parser.add_argument("--mode", choices=_MODES, default=None, help="Writer mode (default: from config)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="novelpilot")
    parser.add_argument("--version", action="version", version=f"%(prog)s {_package_version()}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    plan_parser = subparsers.add_parser("plan", help="Generate the master plan and run queue")
    _add_common_arguments(plan_parser)
    plan_parser.add_argument("--instruction", default="", help="Extra guidance for the plan")
    plan_parser.add_argument("--target-words", type=int, default=None, help="Total word target for the book")

    run_parser = subparsers.add_parser("run", help="Run the planner task queue")
    _add_common_arguments(run_parser)
    run_parser.add_argument("--instruction", default="", help="Extra guidance appended to every task prompt")

    auto_parser = subparsers.add_parser("auto", help="Auto-write into a chapter file")
    _add_common_arguments(auto_parser)
    auto_parser.add_argument("--file", required=True, help="Chapter file relative to the workspace root")

    chat_parser = subparsers.add_parser("chat", help="Send one message (slash directives allowed)")
    _add_common_arguments(chat_parser)
    chat_parser.add_argument("text", help="Message text, e.g. '/plan outline the second act'")
    chat_parser.add_argument("--file", default=None, help="Active chapter file used for context")

    status_parser = subparsers.add_parser("status", help="Show session state and the run queue")
    _add_common_arguments(status_parser, with_mode=False)

    return parser


__all__ = ["build_parser"]
