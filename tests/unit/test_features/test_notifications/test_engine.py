"""Tests for wiring the engine from settings (process-local mode)."""
from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from notification_service.core.exceptions import NotFoundException
from notification_service.core.settings.notifications import NotificationSettings
from notification_service.features.notifications import NotificationEngine
from notification_service.features.notifications.models import (
    Channel,
    DeliveryStatus,
    NotificationPreferences,
    NotificationRequest,
    NotificationType,
)
from notification_service.features.notifications.preferences import PreferencesCache
from notification_service.infra.messaging import InMemoryMessageBus


@pytest.fixture
def engine(email_settings, templates, smtp_server) -> NotificationEngine:
    return NotificationEngine.from_settings(
        notification_settings=NotificationSettings(),
        email_settings=email_settings,
        use_redis=False,
        templates=templates,
        smtp_client_factory=smtp_server.factory,
    )


def request(**overrides) -> NotificationRequest:
    fields = {
        "type": NotificationType.COMMENT_ADDED,
        "recipient_id": "u1",
        "title": "New comment",
        "metadata": {"recipientEmail": "u1@example.com"},
    }
    fields.update(overrides)
    return NotificationRequest(**fields)


@pytest.mark.unit
class TestNotificationEngine:
    def test_process_local_wiring(self, engine):
        assert isinstance(engine.bus, InMemoryMessageBus)
        assert engine.preferences is None
        assert engine.redis is None
        assert engine.dispatcher.enabled_channels == frozenset(Channel)
        assert engine.transport.failover_enabled

    @pytest.mark.asyncio
    async def test_create_delivers_and_broadcasts(self, engine, smtp_server):
        async with engine:
            await engine.start()
            assert engine.listener.running

            notification = await engine.create(request())

            assert notification.delivery_status is DeliveryStatus.DELIVERED
            assert [r.channel for r in notification.results] == [Channel.EMAIL, Channel.IN_APP]
            assert len(smtp_server.sent_via("primary")) == 1
            stored = await engine.repository.get(notification.id)
            assert stored.delivery_status is DeliveryStatus.DELIVERED

        assert not engine.listener.running

    @pytest.mark.asyncio
    async def test_uses_cached_preferences(self, engine):
        cache = AsyncMock(spec=PreferencesCache)
        cache.get.return_value = NotificationPreferences(muted_types={NotificationType.COMMENT_ADDED})
        engine.preferences = cache

        notification = await engine.create(request())

        cache.get.assert_awaited_once_with("u1")
        assert notification.results == []
        assert notification.delivery_status is DeliveryStatus.PENDING
        await engine.aclose()

    def test_listener_redelivers_through_engine(self, engine):
        assert engine.listener.redeliver == engine.redeliver

    @pytest.mark.asyncio
    async def test_redelivery_request_honours_cached_preferences(self, engine, smtp_server):
        cache = AsyncMock(spec=PreferencesCache)
        cache.get.return_value = NotificationPreferences(email_enabled=False)
        engine.preferences = cache
        await engine.start()
        notification = await engine.create(request())
        assert smtp_server.sent_via("primary") == []

        await engine.dispatcher.publisher.request_redelivery(notification.id)

        assert smtp_server.sent_via("primary") == []
        assert cache.get.await_count == 2
        stored = await engine.repository.get(notification.id)
        assert stored.delivery_status is DeliveryStatus.DELIVERED
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_redelivery_without_cache_uses_defaults(self, engine, smtp_server):
        await engine.start()
        notification = await engine.create(request(), NotificationPreferences(email_enabled=False))
        assert smtp_server.sent_via("primary") == []

        await engine.dispatcher.publisher.request_redelivery(notification.id)

        assert len(smtp_server.sent_via("primary")) == 1
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_redeliver_missing_notification(self, engine):
        engine.preferences = AsyncMock(spec=PreferencesCache)

        with pytest.raises(NotFoundException):
            await engine.redeliver("missing")

        engine.preferences.get.assert_not_awaited()
        await engine.aclose()
