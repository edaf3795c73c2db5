"""Email channel adapter: retry loop over EmailTransport, then one failover send."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
import time
from typing import TYPE_CHECKING, Any

from notification_service.core.settings.email import DEFAULT_TEMPLATE_MAPPING
from notification_service.features.notifications.metrics import (
    notification_channel_attempts_total,
    notification_delivery_duration_seconds,
)
from notification_service.features.notifications.models import (
    Channel,
    ChannelResult,
    DeliveryAttempt,
    NotificationPriority,
)
from notification_service.infra.email.schemas import EmailDeliveryResult
from notification_service.infra.logging import get_logger, set_log_context

if TYPE_CHECKING:
    from collections.abc import Mapping

    from notification_service.features.notifications.models import Notification
    from notification_service.infra.email.transport import EmailTransport
    from notification_service.utils.retry import RetryScheduler

logger = get_logger(__name__, channel="email")

RECIPIENT_EMAIL_KEY = "recipientEmail"

_PRIORITY_HEADERS = {
    NotificationPriority.HIGH: {"X-Priority": "2"},
    NotificationPriority.URGENT: {"X-Priority": "1", "Importance": "high"},
}


class EmailChannelAdapter:
    """Deliver notifications by e-mail.

    The recipient address comes from ``metadata["recipientEmail"]``. Each
    primary attempt is bounded by ``attempt_timeout``; after a retryable
    failure the adapter sleeps ``scheduler.next_delay(i)`` before the next
    attempt. Once ``scheduler.max_attempts`` primary attempts failed, the
    failover endpoint is tried exactly once. Terminal failures (missing
    address, unknown template) stop immediately without failover.
    """

    channel = Channel.EMAIL

    def __init__(
        self,
        transport: EmailTransport,
        scheduler: RetryScheduler,
        template_mapping: Mapping[str, str] | None = None,
        attempt_timeout: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.transport = transport
        self.scheduler = scheduler
        self.template_mapping = dict(template_mapping or DEFAULT_TEMPLATE_MAPPING)
        self.attempt_timeout = attempt_timeout
        self._sleep = sleep

    async def deliver(
        self,
        notification: Notification,
        attempt: DeliveryAttempt | None = None,
    ) -> ChannelResult:
        attempt = attempt or DeliveryAttempt(notification.id, self.channel)
        set_log_context(channel=self.channel.value)
        started = time.perf_counter()
        try:
            return await self._deliver(notification, attempt)
        except Exception as exc:
            logger.exception(
                f"Unexpected error delivering notification {notification.id} by email",
                extra={"notification_id": notification.id},
            )
            return ChannelResult.failed(
                self.channel,
                f"Unexpected error: {exc}",
                attempts=attempt.count,
                error_code="INTERNAL_ERROR",
            )
        finally:
            notification_delivery_duration_seconds.labels(channel=self.channel.value).observe(
                time.perf_counter() - started,
            )

    async def _deliver(self, notification: Notification, attempt: DeliveryAttempt) -> ChannelResult:
        recipient = notification.metadata.get(RECIPIENT_EMAIL_KEY)
        if not isinstance(recipient, str) or not recipient.strip():
            logger.warning(
                f"No recipient email for notification {notification.id}",
                extra={"notification_id": notification.id},
            )
            return ChannelResult.failed(
                self.channel,
                f"Missing {RECIPIENT_EMAIL_KEY} in notification metadata",
                error_code="INVALID_RECIPIENT",
            )

        template_name = self.template_mapping.get(notification.type.value)
        if template_name is None:
            return ChannelResult.failed(
                self.channel,
                f"No email template mapped for {notification.type.value}",
                error_code="INVALID_TEMPLATE",
            )

        send_kwargs: dict[str, Any] = {
            "to": recipient.strip(),
            "subject": notification.title or notification.type.value.replace("_", " ").title(),
            "template_name": template_name,
            "context": self._build_context(notification),
            "headers": _PRIORITY_HEADERS.get(notification.priority, {}),
        }

        result: EmailDeliveryResult | None = None
        for index in range(self.scheduler.max_attempts):
            attempt.record()
            notification_channel_attempts_total.labels(channel=self.channel.value).inc()
            result = await self._attempt(self.transport.send, send_kwargs)

            if result.success:
                return ChannelResult.delivered(self.channel, attempts=attempt.count)

            if not result.retryable:
                logger.warning(
                    f"Email delivery failed terminally for notification {notification.id}",
                    extra={
                        "notification_id": notification.id,
                        "attempt": attempt.count,
                        "error": result.error,
                        "error_code": result.error_code,
                    },
                )
                return ChannelResult.failed(
                    self.channel,
                    result.error or "Email delivery failed",
                    attempts=attempt.count,
                    error_code=result.error_code,
                )

            if index < self.scheduler.max_attempts - 1:
                delay = self.scheduler.next_delay(index)
                logger.warning(
                    f"Email attempt {attempt.count} failed, retrying in {delay:.2f}s",
                    extra={
                        "notification_id": notification.id,
                        "attempt": attempt.count,
                        "delay": delay,
                        "error": result.error,
                        "error_code": result.error_code,
                    },
                )
                await self._sleep(delay)

        primary_error = result.error if result is not None else None
        primary_code = result.error_code if result is not None else None
        logger.warning(
            f"Primary email endpoint exhausted for notification {notification.id}, trying failover",
            extra={"notification_id": notification.id, "attempts": attempt.count, "error": primary_error},
        )

        # A disabled failover answers immediately and is not counted as an attempt
        if self.transport.failover_enabled:
            attempt.record()
            notification_channel_attempts_total.labels(channel=self.channel.value).inc()
        failover = await self._attempt(self.transport.send_via_failover, send_kwargs)
        if failover.success:
            return ChannelResult.delivered(self.channel, attempts=attempt.count)

        logger.error(
            f"Email delivery failed for notification {notification.id}",
            extra={
                "notification_id": notification.id,
                "attempts": attempt.count,
                "error": failover.error,
                "error_code": failover.error_code,
            },
        )
        return ChannelResult.failed(
            self.channel,
            f"Primary: {primary_error}; failover: {failover.error}",
            attempts=attempt.count,
            error_code=primary_code if failover.error_code == "FAILOVER_DISABLED" else failover.error_code,
            retryable=True,
        )

    async def _attempt(
        self,
        send: Callable[..., Awaitable[EmailDeliveryResult]],
        send_kwargs: dict[str, Any],
    ) -> EmailDeliveryResult:
        try:
            return await asyncio.wait_for(send(**send_kwargs), timeout=self.attempt_timeout)
        except TimeoutError:
            return EmailDeliveryResult.failure_result(
                endpoint="unknown",
                error=f"Send attempt timed out after {self.attempt_timeout}s",
                error_code="TIMEOUT",
            )

    @staticmethod
    def _build_context(notification: Notification) -> dict[str, Any]:
        return {
            **notification.metadata,
            "notification_id": notification.id,
            "type": notification.type.value,
            "title": notification.title,
            "message": notification.message,
            "priority": notification.priority.value,
            "recipient_id": notification.recipient_id,
            "sender_id": notification.sender_id,
        }
