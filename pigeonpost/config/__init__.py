"""Configuration system for PigeonPost."""

from pigeonpost.config.loader import ConfigLoadError, load_yaml_config, resolve_config_path
from pigeonpost.config.manager import ConfigManager
from pigeonpost.config.models import (
    MAX_DELIVERY_TIMEOUT_SECONDS,
    DatabaseConfig,
    LoggingConfig,
    PigeonPostConfig,
    WebhooksConfig,
)

__all__ = [
    "ConfigLoadError",
    "ConfigManager",
    "DatabaseConfig",
    "LoggingConfig",
    "MAX_DELIVERY_TIMEOUT_SECONDS",
    "PigeonPostConfig",
    "WebhooksConfig",
    "load_yaml_config",
    "resolve_config_path",
]
