"""Tests for the Redis-backed preferences cache."""
from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from notification_service.core.exceptions import ValidationException
from notification_service.features.notifications.models import (
    Channel,
    NotificationPreferences,
    NotificationPriority,
    NotificationType,
)
from notification_service.features.notifications.preferences import PreferencesCache


@pytest.fixture
def redis() -> AsyncMock:
    client = AsyncMock()
    client.get.return_value = None
    return client


@pytest.mark.unit
class TestPreferencesCache:
    @pytest.mark.asyncio
    async def test_miss_returns_defaults(self, redis):
        preferences = await PreferencesCache(redis).get("u1")

        assert preferences == NotificationPreferences()
        redis.get.assert_awaited_once_with("user:u1:preferences")

    @pytest.mark.asyncio
    async def test_hit_is_parsed(self, redis):
        redis.get.return_value = json.dumps({"emailEnabled": False, "mutedTypes": ["MENTION"]})

        preferences = await PreferencesCache(redis).get("u1")

        assert preferences.enabled_channels() == [Channel.IN_APP]
        assert preferences.muted_types == {NotificationType.MENTION}

    @pytest.mark.asyncio
    async def test_invalid_cached_value_falls_back_to_defaults(self, redis):
        redis.get.return_value = '{"priorityThreshold": "EXTREME"}'

        assert await PreferencesCache(redis).get("u1") == NotificationPreferences()

    @pytest.mark.asyncio
    async def test_unreachable_redis_falls_back_to_defaults(self, redis):
        redis.get.side_effect = RedisConnectionError("down")

        assert await PreferencesCache(redis).get("u1") == NotificationPreferences()

    @pytest.mark.asyncio
    async def test_set_writes_camel_case_with_ttl(self, redis):
        cache = PreferencesCache(redis, ttl=120)

        await cache.set("u1", NotificationPreferences(push_enabled=True))

        key, raw = redis.set.await_args.args
        assert key == "user:u1:preferences"
        assert json.loads(raw)["pushEnabled"] is True
        assert redis.set.await_args.kwargs == {"ex": 120}

    @pytest.mark.asyncio
    async def test_update_merges_snake_and_camel_keys(self, redis):
        redis.get.return_value = json.dumps({"emailEnabled": False})
        cache = PreferencesCache(redis)

        updated = await cache.update("u1", {"priority_threshold": "HIGH", "mutedTypes": ["SYSTEM"]})

        assert updated.email_enabled is False
        assert updated.priority_threshold is NotificationPriority.HIGH
        assert updated.muted_types == {NotificationType.SYSTEM}
        redis.set.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invalid_update_raises_and_keeps_cache(self, redis):
        cache = PreferencesCache(redis)

        with pytest.raises(ValidationException) as exc_info:
            await cache.update("u1", {"quietHours": {"start": "22:00", "end": "07:00", "timezone": "Nowhere/City"}})

        assert exc_info.value.status_code == 422
        redis.set.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalidate(self, redis):
        await PreferencesCache(redis).invalidate("u1")

        redis.delete.assert_awaited_once_with("user:u1:preferences")
