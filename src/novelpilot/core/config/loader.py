"""Config loading and validation."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from novelpilot.core.contracts.config import NovelPilotConfig
from novelpilot.core.contracts.exceptions import ConfigError

DEFAULT_CONFIG_NAME = "novelpilot.json"


def _resolve_path(value: Path, *, base_dir: Path) -> Path:
    if value.is_absolute():
        return value
    return (base_dir / value).resolve()


def load_config(path: str | Path) -> NovelPilotConfig:
    config_path = Path(path).expanduser().resolve()
    config_dir = config_path.parent

    try:
        raw_payload: Any = json.loads(config_path.read_text(encoding="utf-8"))
        parsed = NovelPilotConfig.model_validate(raw_payload)
    except OSError as exc:
        raise ConfigError(f"failed reading config file: {config_path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"invalid JSON in config file: {config_path}") from exc
    except ValidationError as exc:
        raise ConfigError(f"invalid config: {exc}") from exc

    return parsed.model_copy(update={"workspace_root": _resolve_path(parsed.workspace_root, base_dir=config_dir)})


def default_config(workspace_root: str | Path = ".") -> NovelPilotConfig:
    """Dry-run configuration for a workspace that has no config file."""
    return NovelPilotConfig(workspace_root=Path(workspace_root).expanduser().resolve())
