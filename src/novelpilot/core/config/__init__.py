"""Core configuration loading exports."""

from novelpilot.core.config.loader import DEFAULT_CONFIG_NAME, default_config, load_config

__all__ = ["DEFAULT_CONFIG_NAME", "default_config", "load_config"]
