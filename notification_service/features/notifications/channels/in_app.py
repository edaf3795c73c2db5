"""In-app channel adapter: publish to the recipient's pub/sub topic."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
import logging
from typing import TYPE_CHECKING

from notification_service.core.exceptions import PublishException
from notification_service.features.notifications.metrics import notification_channel_attempts_total
from notification_service.features.notifications.models import Channel, ChannelResult, DeliveryAttempt
from notification_service.infra.logging import set_log_context

if TYPE_CHECKING:
    from notification_service.features.notifications.models import Notification
    from notification_service.infra.messaging import MessageBus
    from notification_service.utils.retry import RetryScheduler

logger = logging.getLogger(__name__)

DEFAULT_TOPIC = "user:{recipient_id}:notifications"


class InAppChannelAdapter:
    """Fire-and-forget delivery to ``user:{recipient_id}:notifications``.

    Success means the bus accepted the publish; receipt is never
    acknowledged. Bus errors are retried per the scheduler.
    """

    channel = Channel.IN_APP

    def __init__(
        self,
        bus: MessageBus,
        scheduler: RetryScheduler,
        topic_template: str = DEFAULT_TOPIC,
        attempt_timeout: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.bus = bus
        self.scheduler = scheduler
        self.topic_template = topic_template
        self.attempt_timeout = attempt_timeout
        self._sleep = sleep

    def topic_for(self, recipient_id: str) -> str:
        return self.topic_template.format(recipient_id=recipient_id)

    async def deliver(
        self,
        notification: Notification,
        attempt: DeliveryAttempt | None = None,
    ) -> ChannelResult:
        attempt = attempt or DeliveryAttempt(notification.id, self.channel)
        set_log_context(channel=self.channel.value)
        topic = self.topic_for(notification.recipient_id)
        payload = notification.to_payload()

        error = "In-app delivery failed"
        for index in range(self.scheduler.max_attempts):
            attempt.record()
            notification_channel_attempts_total.labels(channel=self.channel.value).inc()
            try:
                await asyncio.wait_for(self.bus.publish(topic, payload), timeout=self.attempt_timeout)
            except PublishException as e:
                error = e.detail
            except TimeoutError:
                error = f"Publish timed out after {self.attempt_timeout}s"
            except Exception as e:
                logger.exception(
                    "Unexpected error publishing in-app notification",
                    extra={"notification_id": notification.id, "topic": topic},
                )
                return ChannelResult.failed(
                    self.channel,
                    f"Unexpected error: {e}",
                    attempts=attempt.count,
                    error_code="INTERNAL_ERROR",
                )
            else:
                logger.debug(
                    "In-app notification published",
                    extra={"notification_id": notification.id, "topic": topic},
                )
                return ChannelResult.delivered(self.channel, attempts=attempt.count)

            if index < self.scheduler.max_attempts - 1:
                delay = self.scheduler.next_delay(index)
                logger.warning(
                    f"In-app publish failed, retrying in {delay:.2f}s",
                    extra={"notification_id": notification.id, "topic": topic, "error": error},
                )
                await self._sleep(delay)

        logger.error(
            "In-app delivery failed",
            extra={"notification_id": notification.id, "topic": topic, "attempts": attempt.count, "error": error},
        )
        return ChannelResult.failed(
            self.channel,
            error,
            attempts=attempt.count,
            error_code="PUBLISH_ERROR",
            retryable=True,
        )
