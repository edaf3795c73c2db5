"""Cached settings loaders.

Each domain is read from the environment once per process. Tests call
``clear_settings_cache()`` (or build settings directly) to pick up
changed variables.
"""

from __future__ import annotations

from functools import lru_cache

from .email import EmailSettings
from .logs import LoggingSettings
from .notifications import NotificationSettings
from .redis import RedisSettings


@lru_cache(maxsize=1)
def get_notification_settings() -> NotificationSettings:
    """Retry policy, admission control, channel toggles and topics."""
    return NotificationSettings()


@lru_cache(maxsize=1)
def get_email_settings() -> EmailSettings:
    """SMTP endpoints, pooling, send ceiling and templates."""
    return EmailSettings()


@lru_cache(maxsize=1)
def get_redis_settings() -> RedisSettings:
    return RedisSettings()


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    return LoggingSettings()


_LOADERS = (get_notification_settings, get_email_settings, get_redis_settings, get_logging_settings)


def clear_settings_cache() -> None:
    for loader in _LOADERS:
        loader.cache_clear()
