"""Model service implementations and factory."""

from novelpilot.core.providers.anthropic import AnthropicModelService
from novelpilot.core.providers.dry_run import DryRunModelService, DryRunOperation
from novelpilot.core.providers.factory import create_model_service
from novelpilot.core.providers.openai import OpenAIModelService

__all__ = [
    "AnthropicModelService",
    "DryRunModelService",
    "DryRunOperation",
    "OpenAIModelService",
    "create_model_service",
]
