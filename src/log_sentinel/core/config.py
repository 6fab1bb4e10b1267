"""
Configuration management for Log Sentinel.

Uses Pydantic Settings for environment variable validation and type safety.
"""

import sys
from enum import Enum
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from .. import DEFAULT_CONFIG


class Backend(str, Enum):
    """Ingestion backends; exactly one is active per process."""

    WINDOWS = "windows"
    SYSLOG = "syslog"
    MACOS = "macos"


class StartPolicy(str, Enum):
    """Where a source starts reading when the store is empty."""

    MIDNIGHT = "midnight"
    LAST_HOUR = "last_hour"


def default_backend() -> Backend:
    """Pick the backend matching the running platform."""
    if sys.platform.startswith("win"):
        return Backend.WINDOWS
    if sys.platform == "darwin":
        return Backend.MACOS
    return Backend.SYSLOG


class StoreConfig(BaseSettings):
    """SQLite store configuration."""

    db_path: str = Field(
        default=DEFAULT_CONFIG["db_path"],
        description="Path to the SQLite database file"
    )

    class Config:
        env_prefix = "STORE_"


class IngestionConfig(BaseSettings):
    """Log ingestion configuration."""

    backend: Backend = Field(
        default_factory=default_backend,
        description="Log source backend (windows, syslog, macos)"
    )
    poll_interval: float = Field(
        default=DEFAULT_CONFIG["poll_interval"],
        gt=0,
        description="Seconds to sleep between ingestion cycles"
    )
    batch_limit: int = Field(
        default=DEFAULT_CONFIG["batch_limit"],
        ge=1,
        description="Maximum records read per channel per cycle"
    )
    windows_channels: str = Field(
        default="Application,System,Security",
        description="Comma-separated Windows event log names"
    )
    windows_start: StartPolicy = Field(
        default=StartPolicy.MIDNIGHT,
        description="Windows start point when the store is empty"
    )
    syslog_path: str = Field(
        default="/var/log/syslog",
        description="Path to the syslog text file"
    )
    syslog_start: StartPolicy = Field(
        default=StartPolicy.LAST_HOUR,
        description="Syslog start point when the store is empty"
    )
    log_command: str = Field(
        default="log",
        description="macOS log export command"
    )
    macos_start: StartPolicy = Field(
        default=StartPolicy.LAST_HOUR,
        description="macOS start point when the store is empty"
    )

    @property
    def channel_list(self) -> List[str]:
        """Windows channel names as a list."""
        return [c.strip() for c in self.windows_channels.split(",") if c.strip()]

    class Config:
        env_prefix = "INGESTION_"


class ApiConfig(BaseSettings):
    """Rule management API configuration."""

    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8000, ge=1, le=65535, description="Bind port")

    class Config:
        env_prefix = "API_"


class AppConfig(BaseSettings):
    """Main application configuration."""

    log_level: str = Field(
        default=DEFAULT_CONFIG["log_level"],
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    rules_file: Optional[str] = Field(
        default=None,
        description="YAML rule file imported at startup when the store has no rules"
    )

    # Nested configurations
    store: StoreConfig = Field(default_factory=StoreConfig)
    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


# Global config instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """
    Get the global configuration instance.

    Lazily loads configuration on first access.

    Returns:
        AppConfig: The global configuration instance
    """
    global _config
    if _config is None:
        _config = AppConfig(
            store=StoreConfig(),
            ingestion=IngestionConfig(),
            api=ApiConfig(),
        )
    return _config


def reload_config() -> AppConfig:
    """
    Reload configuration from environment variables.

    Useful for testing or when environment changes.

    Returns:
        AppConfig: The reloaded configuration instance
    """
    global _config
    _config = None
    return get_config()
