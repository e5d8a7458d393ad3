"""Configuration contracts."""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from novelpilot.core.contracts.task import WriterMode


class ApplyMode(StrEnum):
    AUTO = "auto"
    REVIEW = "review"


class ModelConfig(BaseModel):
    provider: Literal["openai", "anthropic", "dry-run"] = "dry-run"
    model: str = ""
    base_url: str | None = None
    api_key_env: str | None = None
    timeout: float = Field(default=120.0, gt=0)
    max_retries: int = Field(default=3, ge=0, le=10)
    temperature: float | None = None
    max_tokens: int = Field(default=4096, ge=1)
    dry_run_replies: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_remote_model(self) -> ModelConfig:
        if self.provider != "dry-run" and not self.model.strip():
            raise ValueError(f"model is required for provider '{self.provider}'")
        return self


class StreamSettings(BaseModel):
    first_token_timeout: float = Field(default=35.0, gt=0)
    completion_timeout: float = Field(default=480.0, gt=0)
    auto_retry_max: int = Field(default=1, ge=0)
    context_window: int = Field(default=24, ge=1)
    cleanup_after_done: float = Field(default=30.0, ge=0)
    cleanup_after_error: float = Field(default=1.0, ge=0)
    quiesce_attempts: int = Field(default=40, ge=1)
    quiesce_interval: float = Field(default=0.12, ge=0)
    apply_mode: ApplyMode = ApplyMode.AUTO

    model_config = {"frozen": True}


class PlannerSettings(BaseModel):
    target_words: int = Field(default=200_000, ge=1)
    max_context_chars_per_file: int = Field(default=2200, ge=200)
    max_iterations: int = Field(default=400, ge=1)

    model_config = {"frozen": True}


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


class WritingSettings(BaseModel):
    """Per-project writing knobs; out-of-range values are clamped, not rejected."""

    chapter_word_target: int = 2000
    auto_min_chars: int = 500
    auto_max_chars: int = 2400
    auto_max_rounds: int = 120
    auto_max_chapter_advances: int = 24
    round_settle_delay: float = Field(default=0.28, ge=0)
    switch_delay: float = Field(default=0.22, ge=0)
    refused_send_delay: float = Field(default=0.16, ge=0)

    model_config = {"frozen": True}

    @model_validator(mode="before")
    @classmethod
    def normalize_ranges(cls, data: object) -> object:
        if not isinstance(data, dict):
            return data
        bounds = {
            "chapter_word_target": (0, 200_000),
            "auto_min_chars": (120, 20_000),
            "auto_max_chars": (180, 60_000),
            "auto_max_rounds": (1, 1_000),
            "auto_max_chapter_advances": (0, 200),
        }
        normalized = dict(data)
        for key, (low, high) in bounds.items():
            value = normalized.get(key)
            if isinstance(value, int | float) and not isinstance(value, bool):
                normalized[key] = _clamp(int(value), low, high)
        min_chars = normalized.get("auto_min_chars", 500)
        max_chars = normalized.get("auto_max_chars", 2400)
        if isinstance(min_chars, int) and isinstance(max_chars, int) and max_chars < min_chars:
            normalized["auto_max_chars"] = min_chars
        return normalized


class NovelPilotConfig(BaseModel):
    workspace_root: Path = Path(".")
    session_id: str = "default"
    mode: WriterMode = WriterMode.NORMAL
    model: ModelConfig = Field(default_factory=ModelConfig)
    streams: StreamSettings = Field(default_factory=StreamSettings)
    planner: PlannerSettings = Field(default_factory=PlannerSettings)
    writing: WritingSettings = Field(default_factory=WritingSettings)

    model_config = {"frozen": True}
