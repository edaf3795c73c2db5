"""Wire the delivery engine from settings."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Self

from notification_service.core.settings import (
    get_email_settings,
    get_notification_settings,
    get_redis_settings,
)
from notification_service.features.notifications.channels import (
    EmailChannelAdapter,
    InAppChannelAdapter,
    PushChannelAdapter,
)
from notification_service.features.notifications.dispatcher import NotificationDispatcher
from notification_service.features.notifications.models import Channel
from notification_service.features.notifications.preferences import PreferencesCache
from notification_service.features.notifications.repository import InMemoryNotificationRepository
from notification_service.features.notifications.status import StatusListener, StatusPublisher
from notification_service.infra.cache import create_redis_client
from notification_service.infra.email import EmailTransport, SendRateLimiter, TemplateCache
from notification_service.infra.messaging import InMemoryMessageBus, RedisMessageBus
from notification_service.infra.ratelimit import (
    InMemoryCounterStore,
    RateLimiter,
    RedisCounterStore,
)
from notification_service.utils.retry import RetryScheduler

if TYPE_CHECKING:
    from collections.abc import Callable

    from redis.asyncio import Redis

    from notification_service.core.settings import (
        EmailSettings,
        NotificationSettings,
        RedisSettings,
        SMTPEndpoint,
    )
    from notification_service.features.notifications.models import (
        Notification,
        NotificationPreferences,
        NotificationRequest,
    )
    from notification_service.features.notifications.repository import NotificationRepository
    from notification_service.infra.email.pool import SMTPClient
    from notification_service.infra.messaging import MessageBus
    from notification_service.infra.ratelimit import CounterStore

logger = logging.getLogger(__name__)


class NotificationEngine:
    """Fully wired delivery engine.

    Example:
        async with NotificationEngine.from_settings() as engine:
            await engine.start()
            notification = await engine.create(request)
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        bus: MessageBus,
        transport: EmailTransport,
        listener: StatusListener,
        preferences: PreferencesCache | None = None,
        redis: Redis | None = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.bus = bus
        self.transport = transport
        self.listener = listener
        self.preferences = preferences
        self.redis = redis
        if listener.redeliver is None:
            listener.redeliver = self.redeliver

    @property
    def repository(self) -> NotificationRepository:
        return self.dispatcher.repository

    @classmethod
    def from_settings(
        cls,
        *,
        notification_settings: NotificationSettings | None = None,
        email_settings: EmailSettings | None = None,
        redis_settings: RedisSettings | None = None,
        redis: Redis | None = None,
        use_redis: bool = True,
        repository: NotificationRepository | None = None,
        templates: TemplateCache | None = None,
        smtp_client_factory: Callable[[SMTPEndpoint], SMTPClient] | None = None,
    ) -> NotificationEngine:
        """Build every component.

        With ``use_redis=False`` the counter store and the bus are
        process-local and there is no preferences cache.
        """
        notification_settings = notification_settings or get_notification_settings()
        email_settings = email_settings or get_email_settings()

        preferences: PreferencesCache | None = None
        bus: MessageBus
        store: CounterStore
        if use_redis:
            redis_settings = redis_settings or get_redis_settings()
            redis = redis or create_redis_client(redis_settings)
            store = RedisCounterStore.from_settings(redis, redis_settings)
            bus = RedisMessageBus(redis)
            preferences = PreferencesCache(redis, ttl=notification_settings.preferences_ttl)
        else:
            store = InMemoryCounterStore()
            bus = InMemoryMessageBus()

        scheduler = RetryScheduler.from_settings(notification_settings)
        transport = EmailTransport.from_settings(
            email_settings,
            templates=templates,
            throttle=SendRateLimiter.from_settings(store, email_settings),
            client_factory=smtp_client_factory,
        )
        adapters = {
            Channel.EMAIL: EmailChannelAdapter(
                transport,
                scheduler,
                template_mapping=email_settings.template_mapping,
                attempt_timeout=notification_settings.attempt_timeout,
            ),
            Channel.IN_APP: InAppChannelAdapter(
                bus,
                scheduler,
                topic_template=notification_settings.recipient_topic,
                attempt_timeout=notification_settings.attempt_timeout,
            ),
            Channel.PUSH: PushChannelAdapter(),
        }

        repository = repository or InMemoryNotificationRepository()
        dispatcher = NotificationDispatcher(
            repository,
            RateLimiter.from_settings(store, notification_settings),
            adapters,
            StatusPublisher(bus, notification_settings.status_topic),
            notification_settings,
        )
        listener = StatusListener(
            bus,
            repository,
            topic=notification_settings.status_topic,
        )

        logger.info(
            "Notification engine configured",
            extra={
                "redis": use_redis,
                "channels": sorted(channel.value for channel in dispatcher.enabled_channels),
                "failover": transport.failover_enabled,
            },
        )
        return cls(dispatcher, bus, transport, listener, preferences=preferences, redis=redis if use_redis else None)

    async def start(self) -> None:
        """Start consuming status broadcasts."""
        await self.listener.start()

    async def create(
        self,
        request: NotificationRequest,
        preferences: NotificationPreferences | None = None,
    ) -> Notification:
        """Create a notification, resolving preferences from the cache when not given."""
        if preferences is None and self.preferences is not None:
            preferences = await self.preferences.get(request.recipient_id)
        return await self.dispatcher.create(request, preferences)

    async def redeliver(self, notification_id: str) -> Notification:
        """Redeliver a stored notification under the recipient's cached preferences.

        Raises:
            NotFoundException: If the notification does not exist.
        """
        preferences = None
        if self.preferences is not None:
            notification = await self.repository.get(notification_id)
            if notification is not None:
                preferences = await self.preferences.get(notification.recipient_id)
        return await self.dispatcher.redeliver(notification_id, preferences)

    async def aclose(self) -> None:
        await self.listener.stop()
        await self.transport.aclose()
        await self.bus.close()
        if self.redis is not None:
            await self.redis.aclose()
        logger.info("Notification engine closed")

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
