"""Slash directives typed into the chat composer."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from novelpilot.core.contracts.task import WriterMode

AutoAction = Literal["on", "off", "toggle"]

_DIRECTIVE_RE = re.compile(r"^/(\S+)\s*(.*)$", re.DOTALL)

_MODE_COMMANDS: dict[str, WriterMode] = {
    "normal": WriterMode.NORMAL,
    "plan": WriterMode.PLAN,
    "spec": WriterMode.SPEC,
    "普通": WriterMode.NORMAL,
    "大纲": WriterMode.PLAN,
    "细纲": WriterMode.SPEC,
}


@dataclass(frozen=True)
class ComposerDirective:
    content: str
    requested_mode: WriterMode | None = None
    auto_action: AutoAction | None = None
    matched: bool = False


def parse_composer_input(raw: str) -> ComposerDirective:
    trimmed = raw.strip()
    match = _DIRECTIVE_RE.match(trimmed)
    if match is None:
        return ComposerDirective(content=trimmed)

    command = match.group(1).lower()
    rest = match.group(2).strip()
    if command == "auto":
        argument = rest.split()[0].lower() if rest else ""
        action: AutoAction = "on" if argument == "on" else "off" if argument == "off" else "toggle"
        return ComposerDirective(content="", auto_action=action, matched=True)

    mode = _MODE_COMMANDS.get(command)
    if mode is not None:
        return ComposerDirective(content=rest, requested_mode=mode, matched=True)
    return ComposerDirective(content=trimmed)
