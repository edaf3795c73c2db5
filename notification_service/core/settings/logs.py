"""Logging configuration settings."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LoggingSettings(BaseSettings):
    """Structured logging for the delivery engine and the CLI.

    Environment variables use LOG_ prefix.
    Example: LOG_LEVEL=DEBUG, LOG_JSON_FORMAT=false, LOG_FILE=/var/log/notify.jsonl
    """

    level: LogLevel = Field(default="INFO", description="Root level for service loggers")
    console_level: LogLevel | None = Field(
        default=None,
        description="Console handler level (defaults to level)",
    )
    file_level: LogLevel | None = Field(
        default=None,
        description="File handler level (defaults to level)",
    )

    json_format: bool = Field(default=True, description="JSON lines instead of plain text")
    console_enabled: bool = Field(default=True, description="Log to stderr")
    include_context: bool = Field(
        default=True,
        description="Attach notification_id/channel context to every record",
    )
    capture_warnings: bool = Field(default=True, description="Route warnings.warn() through logging")

    log_file: str | None = Field(default=None, max_length=500, alias="LOG_FILE")
    max_bytes: int = Field(default=10_485_760, ge=1024, le=1_073_741_824, description="Rotate the file at this size")
    backup_count: int = Field(default=5, ge=0, le=100)

    service_name: str = Field(default="notification-service", description="Value of the ``service`` field")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("level", "console_level", "file_level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    def to_logging_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``configure_logging()``."""
        return {
            "log_level": self.level,
            "console_level": self.console_level,
            "file_level": self.file_level,
            "json_logs": self.json_format,
            "console_enabled": self.console_enabled,
            "include_context": self.include_context,
            "capture_warnings": self.capture_warnings,
            "file_path": self.log_file,
            "file_max_bytes": self.max_bytes,
            "file_backup_count": self.backup_count,
            "service_name": self.service_name,
        }
