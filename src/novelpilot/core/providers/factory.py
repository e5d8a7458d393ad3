"""Model service factory."""

from __future__ import annotations

import httpx

from novelpilot.core.contracts.config import ModelConfig
from novelpilot.core.contracts.exceptions import ConfigError
from novelpilot.core.contracts.model import ModelService
from novelpilot.core.providers.anthropic import AnthropicModelService
from novelpilot.core.providers.base import HttpModelService
from novelpilot.core.providers.dry_run import DryRunModelService
from novelpilot.core.providers.openai import OpenAIModelService

MODEL_SERVICES: dict[str, type[HttpModelService]] = {
    "openai": OpenAIModelService,
    "anthropic": AnthropicModelService,
}


def create_model_service(config: ModelConfig, *, transport: httpx.AsyncBaseTransport | None = None) -> ModelService:
    """Instantiate the service named by ``config.provider``; use it as an async context manager."""
    if config.provider == "dry-run":
        return DryRunModelService(config.dry_run_replies)
    service_cls = MODEL_SERVICES.get(config.provider)
    if service_cls is None:
        raise ConfigError(f"Unknown model provider: {config.provider}")
    return service_cls(config, transport=transport)
