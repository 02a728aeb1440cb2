"""Centralized configuration using pydantic-settings.

Defaults can be overridden with ``CONSUL_MUTEX_*`` environment variables or
a ``.env`` file, e.g. ``CONSUL_MUTEX_CONSUL_URL=http://consul:8500``.
"""

import socket
from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class MutexSettings(BaseSettings):
    """Process-wide defaults for every mutex."""

    model_config = SettingsConfigDict(
        env_prefix="CONSUL_MUTEX_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Consul
    consul_url: str = Field("http://localhost:8500", description="Consul agent base URL")
    value: str = Field(
        default_factory=socket.gethostname,
        description="Value stored on the lock key while holding the lock",
    )

    # HTTP timeouts, in seconds. Blocking reads may legitimately take as long
    # as Consul's own wait limit, so the read timeout is effectively unbounded.
    read_timeout: float = Field(86400.0, gt=0, description="Read timeout")
    connect_timeout: float = Field(60.0, gt=0, description="Connect timeout")

    # Logging
    log_level: LogLevel = Field(LogLevel.INFO, description="Log level")
    log_format: str = Field("console", description="Log format (json or console)")


settings = MutexSettings()
