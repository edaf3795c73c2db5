"""Channel adapters for multi-channel notification delivery."""

from __future__ import annotations

from notification_service.features.notifications.channels.base import ChannelAdapter
from notification_service.features.notifications.channels.email import EmailChannelAdapter
from notification_service.features.notifications.channels.in_app import InAppChannelAdapter
from notification_service.features.notifications.channels.push import PushChannelAdapter

__all__ = [
    "ChannelAdapter",
    "EmailChannelAdapter",
    "InAppChannelAdapter",
    "PushChannelAdapter",
]
