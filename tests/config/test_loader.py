from __future__ import annotations

import json
from pathlib import Path

import pytest

from novelpilot.core.config import default_config, load_config
from novelpilot.core.contracts.config import ApplyMode
from novelpilot.core.contracts.exceptions import ConfigError
from novelpilot.core.contracts.task import WriterMode


def _write(path: Path, payload: object) -> Path:
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_load_config_resolves_workspace_relative_to_file(tmp_path: Path) -> None:
    (tmp_path / "conf").mkdir()
    config_path = _write(
        tmp_path / "conf" / "novelpilot.json",
        {
            "workspace_root": "../book",
            "mode": "spec",
            "model": {"provider": "openai", "model": "gpt-test", "api_key_env": "MY_KEY"},
            "streams": {"apply_mode": "review", "auto_retry_max": 2},
        },
    )

    config = load_config(config_path)

    assert config.workspace_root == (tmp_path / "book").resolve()
    assert config.mode is WriterMode.SPEC
    assert config.model.api_key_env == "MY_KEY"
    assert config.streams.apply_mode is ApplyMode.REVIEW
    assert config.streams.auto_retry_max == 2
    assert config.streams.first_token_timeout == 35.0


def test_absolute_workspace_root_is_kept(tmp_path: Path) -> None:
    config = load_config(_write(tmp_path / "novelpilot.json", {"workspace_root": str(tmp_path / "elsewhere")}))

    assert config.workspace_root == tmp_path / "elsewhere"


def test_missing_file_raises_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="failed reading config file"):
        load_config(tmp_path / "missing.json")


def test_invalid_json_raises_config_error(tmp_path: Path) -> None:
    path = tmp_path / "novelpilot.json"
    path.write_text("{", encoding="utf-8")

    with pytest.raises(ConfigError, match="invalid JSON in config file"):
        load_config(path)


@pytest.mark.parametrize(
    "payload",
    [
        {"mode": "poetry"},
        {"model": {"provider": "anthropic"}},
        {"streams": {"first_token_timeout": 0}},
        {"planner": {"max_context_chars_per_file": 10}},
    ],
)
def test_invalid_values_raise_config_error(tmp_path: Path, payload: dict[str, object]) -> None:
    with pytest.raises(ConfigError, match="invalid config"):
        load_config(_write(tmp_path / "novelpilot.json", payload))


def test_default_config_is_dry_run(tmp_path: Path) -> None:
    config = default_config(tmp_path)

    assert config.workspace_root == tmp_path.resolve()
    assert config.model.provider == "dry-run"
    assert config.mode is WriterMode.NORMAL
