"""Redis-backed cache of resolved notification preferences."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from notification_service.core.exceptions import ValidationException
from notification_service.features.notifications.models import NotificationPreferences

if TYPE_CHECKING:
    from collections.abc import Mapping

    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

DEFAULT_TTL = 86_400


class PreferencesCache:
    """Per-user preferences stored as JSON under ``user:{id}:preferences``.

    A miss (or an unreachable Redis on read) yields the default preferences.

    Example:
        cache = PreferencesCache(redis, ttl=settings.preferences_ttl)
        prefs = await cache.update("u1", {"mutedTypes": ["SYSTEM"]})
    """

    def __init__(self, redis: Redis, ttl: int = DEFAULT_TTL, key_template: str = "user:{user_id}:preferences") -> None:
        self.redis = redis
        self.ttl = ttl
        self.key_template = key_template

    def _key(self, user_id: str) -> str:
        return self.key_template.format(user_id=user_id)

    async def get(self, user_id: str) -> NotificationPreferences:
        try:
            raw = await self.redis.get(self._key(user_id))
        except Exception as e:
            logger.error(
                "Failed to read cached preferences, using defaults",
                extra={"user_id": user_id, "error": str(e)},
            )
            return NotificationPreferences()

        if raw is None:
            return NotificationPreferences()

        try:
            return NotificationPreferences.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(
                "Discarding invalid cached preferences",
                extra={"user_id": user_id, "error": str(e)},
            )
            return NotificationPreferences()

    async def set(self, user_id: str, preferences: NotificationPreferences) -> None:
        await self.redis.set(
            self._key(user_id),
            preferences.model_dump_json(by_alias=True),
            ex=self.ttl,
        )
        logger.debug("Cached notification preferences", extra={"user_id": user_id})

    async def update(self, user_id: str, changes: Mapping[str, Any]) -> NotificationPreferences:
        """Merge ``changes`` (camelCase or snake_case keys) into the cached value.

        Raises:
            ValidationException: If the merged preferences are invalid.
        """
        current = await self.get(user_id)
        merged = current.model_dump(mode="json", by_alias=True)
        merged.update({to_camel(key): value for key, value in changes.items()})

        try:
            updated = NotificationPreferences.model_validate(merged)
        except ValidationError as e:
            raise ValidationException(
                detail="Invalid notification preferences",
                extra={"user_id": user_id, "errors": e.errors(include_url=False)},
            ) from e

        await self.set(user_id, updated)
        logger.info(
            "Updated notification preferences",
            extra={"user_id": user_id, "fields": sorted(changes)},
        )
        return updated

    async def invalidate(self, user_id: str) -> None:
        await self.redis.delete(self._key(user_id))
