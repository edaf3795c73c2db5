"""Topic-based pub/sub used for status events and in-app delivery."""

from notification_service.infra.messaging.bus import (
    InMemoryMessageBus,
    MessageBus,
    MessageHandler,
    RedisMessageBus,
    Unsubscribe,
)

__all__ = [
    "InMemoryMessageBus",
    "MessageBus",
    "MessageHandler",
    "RedisMessageBus",
    "Unsubscribe",
]
