"""Notification delivery settings.

Environment variables use NOTIFY_ prefix.
Example: NOTIFY_MAX_ATTEMPTS=5, NOTIFY_RATE_LIMIT_POINTS=20
"""

from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class NotificationSettings(BaseSettings):
    """Retry, admission control, channel toggles and pub/sub topics."""

    # Retry policy shared by channel adapters
    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Primary send attempts per channel before failover",
    )
    retry_base_delay: float = Field(
        default=1.0,
        ge=0.0,
        le=60.0,
        description="Backoff base delay in seconds (delay = base * 2^attempt)",
    )
    retry_max_delay: float = Field(
        default=30.0,
        ge=0.0,
        le=3600.0,
        description="Upper bound for a single backoff delay in seconds",
    )
    retry_jitter: bool = Field(default=False)

    # Timeouts
    attempt_timeout: float = Field(
        default=30.0,
        gt=0,
        le=600.0,
        description="Deadline for one send attempt (including each retry)",
    )
    channel_timeout: float = Field(
        default=150.0,
        gt=0,
        le=3600.0,
        description="Deadline for a whole channel delivery inside the fan-out",
    )

    # Per-recipient admission control
    rate_limit_points: int = Field(default=100, ge=1, le=100_000)
    rate_limit_window: int = Field(default=60, ge=1, le=86_400, description="Window in seconds")
    rate_limit_block_duration: int = Field(
        default=60,
        ge=0,
        le=86_400,
        description="Seconds a recipient stays blocked once the window budget is exceeded",
    )
    rate_limit_key_prefix: str = Field(default="ratelimit:notifications")

    # Service-level channel toggles
    email_enabled: bool = True
    in_app_enabled: bool = True
    push_enabled: bool = True

    deliver_when_no_channels: bool = Field(
        default=False,
        description="Mark notifications that need zero channels as DELIVERED instead of leaving them PENDING",
    )

    # Pub/sub topics
    status_topic: str = Field(default="notification:status")
    recipient_topic: str = Field(default="user:{recipient_id}:notifications")

    preferences_ttl: int = Field(default=86_400, ge=1, description="Preferences cache TTL in seconds")
    expiry_days: int = Field(default=30, ge=1, le=3650)

    @model_validator(mode="after")
    def validate_recipient_topic(self) -> NotificationSettings:
        if "{recipient_id}" not in self.recipient_topic:
            msg = "recipient_topic must contain the {recipient_id} placeholder"
            raise ValueError(msg)
        return self

    model_config = SettingsConfigDict(
        env_prefix="NOTIFY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    def topic_for_recipient(self, recipient_id: str) -> str:
        return self.recipient_topic.format(recipient_id=recipient_id)
