"""Modular Pydantic Settings v2 configuration.

One frozen settings model per domain, read from environment variables
(and an optional ``.env`` file):

- ``NOTIFY_*``: retry policy, admission control, channel toggles, topics
- ``EMAIL_*``: SMTP endpoints, pooling, send ceiling, templates
- ``REDIS_*``: shared counter store and pub/sub bus
- ``LOG_*``: structured logging

Import settings via cached loaders:
    from notification_service.core.settings import get_notification_settings
"""

from __future__ import annotations

from .email import EmailSettings, SMTPEndpoint
from .loader import (
    clear_settings_cache,
    get_email_settings,
    get_logging_settings,
    get_notification_settings,
    get_redis_settings,
)
from .logs import LoggingSettings
from .notifications import NotificationSettings
from .redis import RedisSettings

__all__ = [
    "EmailSettings",
    "LoggingSettings",
    "NotificationSettings",
    "RedisSettings",
    "SMTPEndpoint",
    "clear_settings_cache",
    "get_email_settings",
    "get_logging_settings",
    "get_notification_settings",
    "get_redis_settings",
]
