"""Push channel placeholder."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from notification_service.features.notifications.models import Channel, ChannelResult, DeliveryAttempt

if TYPE_CHECKING:
    from notification_service.features.notifications.models import Notification

logger = logging.getLogger(__name__)


class PushChannelAdapter:
    """Push delivery is not implemented.

    Always returns an explicit failure so "push failed" is distinguishable
    from "push not selected".
    """

    channel = Channel.PUSH

    async def deliver(
        self,
        notification: Notification,
        attempt: DeliveryAttempt | None = None,
    ) -> ChannelResult:
        logger.info(
            "Push channel requested but not implemented",
            extra={"notification_id": notification.id, "channel": self.channel.value},
        )
        return ChannelResult.failed(self.channel, "not implemented", error_code="NOT_IMPLEMENTED")
