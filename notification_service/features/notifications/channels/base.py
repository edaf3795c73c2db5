"""Base protocol and types for channel adapters."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from notification_service.features.notifications.models import (
    Channel,
    ChannelResult,
    DeliveryAttempt,
    DeliveryOutcome,
)

if TYPE_CHECKING:
    from notification_service.features.notifications.models import Notification


@runtime_checkable
class ChannelAdapter(Protocol):
    """Protocol for channel-specific delivery.

    Each channel (email, in-app, push) implements this protocol. ``deliver``
    never raises: every failure is encoded in the returned ``ChannelResult``.
    """

    channel: Channel

    async def deliver(
        self,
        notification: Notification,
        attempt: DeliveryAttempt | None = None,
    ) -> ChannelResult:
        """Deliver ``notification`` through this channel.

        Args:
            notification: Notification to deliver
            attempt: Attempt counter for this dispatch (created when omitted)

        Returns:
            ChannelResult with outcome and attempt count
        """
        ...


__all__ = [
    "ChannelAdapter",
    "ChannelResult",
    "DeliveryAttempt",
    "DeliveryOutcome",
]
