"""Notification delivery engine.

Fans one notification out to e-mail, in-app and push channels with retry,
failover, per-recipient admission control and status broadcast.
"""

from __future__ import annotations

from notification_service.features.notifications.dispatcher import NotificationDispatcher
from notification_service.features.notifications.engine import NotificationEngine
from notification_service.features.notifications.models import (
    Channel,
    ChannelResult,
    DeliveryOutcome,
    DeliveryStatus,
    Notification,
    NotificationPreferences,
    NotificationPriority,
    NotificationRequest,
    NotificationType,
    QuietHours,
)
from notification_service.features.notifications.preferences import PreferencesCache
from notification_service.features.notifications.repository import (
    InMemoryNotificationRepository,
    NotificationRepository,
)
from notification_service.features.notifications.status import StatusListener, StatusPublisher

__all__ = [
    "Channel",
    "ChannelResult",
    "DeliveryOutcome",
    "DeliveryStatus",
    "InMemoryNotificationRepository",
    "Notification",
    "NotificationDispatcher",
    "NotificationEngine",
    "NotificationPreferences",
    "NotificationPriority",
    "NotificationRequest",
    "NotificationRepository",
    "NotificationType",
    "PreferencesCache",
    "QuietHours",
    "StatusListener",
    "StatusPublisher",
]
