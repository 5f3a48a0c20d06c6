"""Settings management for the Sparkscan Batch Analyzer."""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import ValidationError

from ..errors import ConfigurationError
from .models import (
    AppConfig,
    Environment,
    LoggingConfig,
    ProcessingConfig,
    SparkscanConfig,
    StorageBackend,
    StorageConfig,
)


class SettingsError(ConfigurationError):
    """Configuration settings error."""

    pass


class Settings:
    """Application settings manager."""

    def __init__(self, env_file: Path | None = None) -> None:
        """Initialize settings.

        Args:
            env_file: Path to .env file. If None, looks for .env in current directory.
        """
        self.env_file = env_file or Path(".env")
        self._config: AppConfig | None = None
        self._load_environment()

    def _load_environment(self) -> None:
        """Load environment variables from .env file."""
        if self.env_file.exists():
            load_dotenv(self.env_file)
        else:
            for env_path in [Path(".env"), Path("config/.env")]:
                if env_path.exists():
                    load_dotenv(env_path)
                    break

    def _get_env(self, key: str, default: Any = None, required: bool = False) -> Any:
        """Get environment variable with validation.

        Raises:
            SettingsError: If required variable is missing
        """
        value = os.getenv(key, default)
        if required and value is None:
            raise SettingsError(f"Required environment variable '{key}' not found", config_key=key)
        return value

    def _get_bool(self, key: str, default: bool = False) -> bool:
        return str(self._get_env(key, str(default))).lower() in {"1", "true", "yes", "on"}

    def _build_sparkscan_config(self) -> SparkscanConfig:
        """Build Sparkscan configuration from environment variables."""
        return SparkscanConfig(
            base_url=self._get_env("SPARKSCAN_BASE_URL", "https://www.sparkscan.io/api/v1"),
            network=self._get_env("SPARKSCAN_NETWORK", "MAINNET"),
            user_agent=self._get_env("SPARKSCAN_USER_AGENT", "Sparkscan-Batch-Analyzer/1.0"),
            timeout_seconds=float(self._get_env("SPARKSCAN_TIMEOUT", 30)),
        )

    def _build_processing_config(self) -> ProcessingConfig:
        """Build processing configuration from environment variables."""
        return ProcessingConfig(
            default_rate_limit=int(self._get_env("RATE_LIMIT", 5)),
            max_retries=int(self._get_env("MAX_RETRIES", 3)),
            rate_limit_floor_seconds=float(self._get_env("RATE_LIMIT_FLOOR", 1.0)),
            rate_limit_backoff_seconds=float(self._get_env("RATE_LIMIT_BACKOFF", 5.0)),
            max_rate_limit_backoff_seconds=float(self._get_env("MAX_RATE_LIMIT_BACKOFF", 15.0)),
            network_backoff_seconds=float(self._get_env("NETWORK_BACKOFF", 2.0)),
            delay_first_call=self._get_bool("DELAY_FIRST_CALL"),
        )

    def _build_storage_config(self) -> StorageConfig:
        """Build storage configuration from environment variables."""
        backend_str = self._get_env("STORAGE_BACKEND", "memory").lower()
        try:
            backend = StorageBackend(backend_str)
        except ValueError as e:
            raise SettingsError(f"Unsupported storage backend: {backend_str}", config_key="STORAGE_BACKEND") from e

        return StorageConfig(
            backend=backend,
            redis_url=self._get_env("REDIS_URL", "redis://localhost:6379/0"),
            redis_password=self._get_env("REDIS_PASSWORD"),
            key_prefix=self._get_env("STORAGE_KEY_PREFIX", "sparkscan_batch:"),
        )

    def _build_logging_config(self) -> LoggingConfig:
        """Build logging configuration from environment variables."""
        log_file = self._get_env("LOG_FILE")
        return LoggingConfig(
            level=self._get_env("LOG_LEVEL", "INFO"),
            file=Path(log_file) if log_file else None,
            max_size_mb=int(self._get_env("LOG_MAX_SIZE_MB", 100)),
            backup_count=int(self._get_env("LOG_BACKUP_COUNT", 5)),
        )

    def load_config(self) -> AppConfig:
        """Load and validate application configuration.

        Returns:
            Validated application configuration

        Raises:
            SettingsError: If configuration is invalid
        """
        if self._config is not None:
            return self._config

        try:
            environment_str = self._get_env("ENVIRONMENT", "development").lower()
            try:
                environment = Environment(environment_str)
            except ValueError:
                environment = Environment.DEVELOPMENT

            config_data = {
                "environment": environment,
                "debug": self._get_bool("DEBUG"),
                "sparkscan": self._build_sparkscan_config(),
                "processing": self._build_processing_config(),
                "storage": self._build_storage_config(),
                "logging": self._build_logging_config(),
            }

            self._config = AppConfig(**config_data)
            return self._config

        except SettingsError:
            raise
        except ValidationError as e:
            raise SettingsError(f"Configuration validation failed: {e}") from e
        except Exception as e:
            raise SettingsError(f"Failed to load configuration: {e}") from e

    def get_config(self) -> AppConfig:
        """Get the current configuration, loading if necessary."""
        if self._config is None:
            return self.load_config()
        return self._config

    def reload_config(self) -> AppConfig:
        """Reload configuration from environment."""
        self._config = None
        self._load_environment()
        return self.load_config()

    def validate_config(self) -> dict[str, Any]:
        """Validate configuration and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        issues = []
        warnings = []

        try:
            config = self.load_config()

            if config.environment == Environment.PRODUCTION and config.debug:
                warnings.append("Debug mode is enabled in production")

            if config.environment == Environment.PRODUCTION and config.storage.backend == StorageBackend.MEMORY:
                warnings.append("Memory storage loses all jobs when the process exits")

            processing = config.processing
            if processing.rate_limit_backoff_seconds > processing.max_rate_limit_backoff_seconds:
                issues.append("RATE_LIMIT_BACKOFF must not exceed MAX_RATE_LIMIT_BACKOFF")

            if config.logging.file:
                log_dir = config.logging.file.parent
                if not log_dir.exists():
                    try:
                        log_dir.mkdir(parents=True, exist_ok=True)
                    except OSError as e:
                        issues.append(f"Cannot create log directory: {e}")

            return {
                "valid": len(issues) == 0,
                "config": config.model_dump(),
                "issues": issues,
                "warnings": warnings,
            }

        except SettingsError as e:
            return {
                "valid": False,
                "config": None,
                "issues": [str(e)],
                "warnings": [],
            }


@lru_cache
def get_settings() -> Settings:
    """Get global settings instance (cached)."""
    return Settings()


def get_config() -> AppConfig:
    """Get application configuration (convenience function)."""
    return get_settings().get_config()
