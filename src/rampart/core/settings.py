"""Environment-driven settings for rampart.

The engine reads no configuration files of its own: policies are built
from explicit config objects. ``RampartSettings`` only seeds ambient
defaults (logging level, output format, service name) from ``RAMPART_*``
environment variables or a ``.env`` file.

Examples:
    >>> import os
    >>> os.environ["RAMPART_LOG_LEVEL"] = "DEBUG"
    >>> RampartSettings().log_level
    'DEBUG'

Tags:
    settings, configuration, pydantic, environment, rampart-core
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RampartSettings(BaseSettings):
    """Ambient settings shared by every process embedding rampart.

    Fields
    ──────
    log_level    : Structlog / stdlib log level
    log_json     : JSON output (True), console (False), or auto-detect (None)
    service_name : ``service.name`` attached to every log event
    """

    model_config = SettingsConfigDict(
        env_prefix="RAMPART_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"
    log_json: bool | None = None
    service_name: str = Field(
        default="rampart",
        description="Service name attached to structured log events",
    )

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level


def get_settings() -> RampartSettings:
    """Build settings from the current environment."""
    return RampartSettings()


__all__ = ["RampartSettings", "get_settings"]
