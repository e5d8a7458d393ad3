"""Command-line interface for NovelPilot."""

from __future__ import annotations

import asyncio as asyncio
import logging as logging

from novelpilot import NovelPilot as NovelPilot
from novelpilot import load_config as load_config
from novelpilot.core.config import default_config as default_config
from novelpilot.cli.app import main as main
from novelpilot.cli.commands import auto as auto_command
from novelpilot.cli.commands import chat as chat_command
from novelpilot.cli.commands import plan as plan_command
from novelpilot.cli.commands import run as run_command
from novelpilot.cli.commands import status as status_command
from novelpilot.cli.parser import _package_version as _package_version
from novelpilot.cli.parser import build_parser as build_parser

_format_plan_summary = plan_command.format_plan_summary
_format_run_summary = run_command.format_run_summary
_format_auto_summary = auto_command.format_auto_summary
_format_chat_reply = chat_command.format_chat_reply
_format_status_summary = status_command.format_status_summary

_run_plan = plan_command.run_plan
_run_queue = run_command.run_queue
_run_auto = auto_command.run_auto
_run_chat = chat_command.run_chat
_run_status = status_command.run_status
