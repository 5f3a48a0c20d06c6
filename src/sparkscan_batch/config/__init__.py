"""Configuration package for the Sparkscan Batch Analyzer.

This package provides configuration management using Pydantic models
and environment variables for type safety and validation.

Example:
    from sparkscan_batch.config import get_config

    config = get_config()
    print(f"Environment: {config.environment}")
    print(f"Rate limit: {config.processing.default_rate_limit}/s")
"""

from .models import (
    AppConfig,
    Environment,
    LoggingConfig,
    ProcessingConfig,
    SparkscanConfig,
    StorageBackend,
    StorageConfig,
)
from .settings import (
    Settings,
    SettingsError,
    get_config,
    get_settings,
)

__all__ = [
    # Main configuration classes
    "AppConfig",
    "SparkscanConfig",
    "ProcessingConfig",
    "StorageConfig",
    "LoggingConfig",
    # Enums
    "Environment",
    "StorageBackend",
    # Settings management
    "Settings",
    "SettingsError",
    "get_settings",
    "get_config",
]
