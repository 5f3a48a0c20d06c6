"""Configuration models using Pydantic for validation and type safety."""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Environment(str, Enum):
    """Application environment types."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class StorageBackend(str, Enum):
    """Available result store backends."""

    MEMORY = "memory"
    REDIS = "redis"


class SparkscanConfig(BaseModel):
    """Sparkscan API configuration."""

    base_url: str = Field("https://www.sparkscan.io/api/v1", description="Sparkscan API base URL")
    network: str = Field("MAINNET", description="Spark network queried")
    user_agent: str = Field("Sparkscan-Batch-Analyzer/1.0", description="User-Agent header")
    timeout_seconds: float = Field(30.0, description="Total request timeout in seconds", gt=0)
    connect_timeout_seconds: float = Field(10.0, description="Connect timeout in seconds", gt=0)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate base URL format."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("Base URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("network")
    @classmethod
    def validate_network(cls, v: str) -> str:
        """Networks are upper-case on the Sparkscan API."""
        return v.upper()


class ProcessingConfig(BaseModel):
    """Batch processing and retry configuration."""

    default_rate_limit: int = Field(default=5, description="Lookups per second per job", ge=1, le=100)
    max_retries: int = Field(default=3, description="Retries per lookup after the first attempt", ge=0, le=10)
    rate_limit_floor_seconds: float = Field(default=1.0, description="Minimum wait after a 429", ge=0.0)
    rate_limit_backoff_seconds: float = Field(default=5.0, description="Base wait after a 429", ge=0.0)
    max_rate_limit_backoff_seconds: float = Field(default=15.0, description="Upper bound of a 429 wait", ge=0.0)
    network_backoff_seconds: float = Field(default=2.0, description="Base wait after a network error", ge=0.0)
    delay_first_call: bool = Field(default=False, description="Apply the rate interval before the first lookup")


class StorageConfig(BaseModel):
    """Result store configuration."""

    backend: StorageBackend = Field(default=StorageBackend.MEMORY, description="Store backend type")
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis connection URL")
    redis_password: str | None = Field(default=None, description="Redis password")
    key_prefix: str = Field(default="sparkscan_batch:", description="Prefix for all Redis keys")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    file: Path | None = Field(default=None, description="Log file path")
    max_size_mb: int = Field(default=100, description="Max log file size in MB", ge=1)
    backup_count: int = Field(default=5, description="Number of backup log files", ge=0)

    @field_validator("level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()


class AppConfig(BaseModel):
    """Main application configuration."""

    environment: Environment = Field(Environment.DEVELOPMENT, description="Application environment")
    debug: bool = Field(False, description="Debug mode")

    sparkscan: SparkscanConfig = Field(default_factory=SparkscanConfig)
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(
        validate_assignment=True,
    )

    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == Environment.PRODUCTION

    def get_storage_backend(self) -> str:
        """Get the storage backend as string."""
        return self.storage.backend.value
