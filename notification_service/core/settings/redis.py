"""Redis settings for the counter store, the pub/sub bus and the preferences cache."""

from __future__ import annotations

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseSettings):
    """One client, shared by every Redis consumer in the process.

    Environment variables use REDIS_ prefix.
    Example: REDIS_URL="rediss://cache.internal:6380/2"
    """

    url: str = Field(default="redis://localhost:6379/0", description="redis://, rediss:// or unix:// URL")
    password: SecretStr | None = Field(default=None, description="Used when the URL carries no credentials")

    max_connections: int = Field(default=50, ge=1, le=1000)
    socket_timeout: float = Field(default=5.0, ge=0.1, le=30.0, description="Per-command timeout in seconds")
    socket_connect_timeout: float = Field(default=5.0, ge=0.1, le=30.0)

    # Counter-store commands only; publishes are retried by the channel adapters
    max_retries: int = Field(default=3, ge=1, le=10, description="Attempts per command on connection errors")
    retry_delay: float = Field(default=0.1, ge=0.0, le=5.0, description="First backoff delay in seconds")

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @field_validator("url")
    @classmethod
    def validate_scheme(cls, v: str) -> str:
        if v.split("://", 1)[0] not in {"redis", "rediss", "unix"}:
            msg = "Redis URL scheme must be redis, rediss or unix"
            raise ValueError(msg)
        return v
