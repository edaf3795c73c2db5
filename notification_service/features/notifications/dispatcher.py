"""Notification dispatcher: admission, persistence, fan-out and status.

``create`` runs the full pipeline for a new notification:

1. validate the request
2. admission control (``RateLimitException``, nothing persisted)
3. persist the PENDING record
4. eligibility (muted type, priority threshold, quiet hours) and channel
   resolution
5. concurrent fan-out, one task per channel, joined before aggregation
6. aggregate the final status from the complete set of results
7. persist and broadcast the status

Channel failures never escape: they are captured in ``ChannelResult``s.
Only validation, admission and not-found errors reach the caller.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from datetime import UTC, datetime
import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from notification_service.core.exceptions import (
    NotFoundException,
    RateLimitException,
    ValidationException,
)
from notification_service.core.settings.notifications import NotificationSettings
from notification_service.features.notifications.metrics import (
    notification_created_total,
    notification_delivery_total,
    notification_rate_limited_total,
    notification_skipped_total,
    notification_status_total,
)
from notification_service.features.notifications.models import (
    Channel,
    ChannelResult,
    DeliveryAttempt,
    DeliveryStatus,
    Notification,
    NotificationPreferences,
    NotificationRequest,
)
from notification_service.features.notifications.routing import (
    aggregate_status,
    check_eligibility,
    resolve_channels,
)
from notification_service.infra.logging import get_logger, set_log_context

if TYPE_CHECKING:
    from notification_service.features.notifications.channels.base import ChannelAdapter
    from notification_service.features.notifications.repository import NotificationRepository
    from notification_service.features.notifications.status import StatusPublisher
    from notification_service.infra.ratelimit import RateLimiter

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Orchestrates creation and multi-channel delivery of notifications.

    Example:
        dispatcher = NotificationDispatcher(repository, limiter, adapters, publisher, settings)
        notification = await dispatcher.create(
            NotificationRequest(type="TASK_ASSIGNED", recipient_id="u1", title="Review PR"),
            preferences,
        )
        notification.delivery_status  # DELIVERED / FAILED / PENDING
        notification.results          # one ChannelResult per channel
    """

    def __init__(
        self,
        repository: NotificationRepository,
        rate_limiter: RateLimiter,
        adapters: Mapping[Channel, ChannelAdapter],
        publisher: StatusPublisher,
        settings: NotificationSettings | None = None,
    ) -> None:
        self.repository = repository
        self.rate_limiter = rate_limiter
        self.adapters = dict(adapters)
        self.publisher = publisher
        self.settings = settings or NotificationSettings()

    @property
    def enabled_channels(self) -> frozenset[Channel]:
        """Channels with an adapter that the service configuration allows."""
        toggles = {
            Channel.EMAIL: self.settings.email_enabled,
            Channel.IN_APP: self.settings.in_app_enabled,
            Channel.PUSH: self.settings.push_enabled,
        }
        return frozenset(channel for channel in self.adapters if toggles.get(channel, False))

    async def create(
        self,
        request: NotificationRequest | Mapping[str, Any],
        preferences: NotificationPreferences | None = None,
        *,
        now: datetime | None = None,
    ) -> Notification:
        """Create, persist and deliver one notification.

        Raises:
            ValidationException: If the request is invalid.
            RateLimitException: If the recipient exceeded its admission budget.
        """
        request = self._validate(request)
        preferences = preferences or NotificationPreferences()

        if not await self.rate_limiter.consume(request.recipient_id):
            notification_rate_limited_total.inc()
            logger.warning(
                "Notification rejected by rate limiter",
                extra={"recipient_id": request.recipient_id, "type": request.type.value},
            )
            raise RateLimitException(
                detail=f"Too many notifications for recipient {request.recipient_id}",
                extra={"recipient_id": request.recipient_id, "retry_after": self.rate_limiter.block_duration},
            )

        notification = Notification.from_request(request, expiry_days=self.settings.expiry_days)
        set_log_context(notification_id=notification.id)
        notification = await self.repository.save(notification)
        notification_created_total.labels(
            notification_type=notification.type.value,
            priority=notification.priority.value,
        ).inc()
        logger.info(
            "Notification created",
            extra={
                "notification_id": notification.id,
                "recipient_id": notification.recipient_id,
                "type": notification.type.value,
                "priority": notification.priority.value,
            },
        )

        skip_reason = check_eligibility(notification, preferences, now=now)
        if skip_reason is not None:
            notification_skipped_total.labels(reason=skip_reason.value).inc()
            logger.info(
                "Notification not eligible for delivery",
                extra={"notification_id": notification.id, "reason": skip_reason.value},
            )
            return await self._finalize(notification, [])

        return await self._deliver(notification, preferences)

    async def redeliver(
        self,
        notification_id: str,
        preferences: NotificationPreferences | None = None,
    ) -> Notification:
        """Re-run channel resolution, fan-out and status for an existing record.

        Rate limiting and eligibility are not re-checked.

        Raises:
            NotFoundException: If the notification does not exist.
        """
        notification = await self._get_or_raise(notification_id)
        set_log_context(notification_id=notification.id)
        logger.info("Redelivering notification", extra={"notification_id": notification.id})
        return await self._deliver(notification, preferences or NotificationPreferences())

    async def get_delivery_status(self, notification_id: str) -> DeliveryStatus:
        """Read-through to the repository.

        Raises:
            NotFoundException: If the notification does not exist.
        """
        notification = await self._get_or_raise(notification_id)
        return notification.delivery_status

    async def _deliver(self, notification: Notification, preferences: NotificationPreferences) -> Notification:
        selection = resolve_channels(notification, preferences, enabled=self.enabled_channels)
        if not selection:
            notification_skipped_total.labels(reason="no_channels").inc()
            logger.info(
                "No channels selected",
                extra={"notification_id": notification.id, "source": selection.source.value},
            )
            return await self._finalize(notification, [])

        results = await self._fan_out(notification, selection.channels)
        return await self._finalize(notification, results)

    async def _fan_out(self, notification: Notification, channels: tuple[Channel, ...]) -> list[ChannelResult]:
        attempts = {channel: DeliveryAttempt(notification.id, channel) for channel in channels}
        outcomes = await asyncio.gather(
            *(self._deliver_channel(notification, attempts[channel]) for channel in channels),
            return_exceptions=True,
        )

        results: list[ChannelResult] = []
        for channel, outcome in zip(channels, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                logger.error(
                    "Channel adapter raised",
                    extra={"notification_id": notification.id, "channel": channel.value, "error": str(outcome)},
                    exc_info=outcome,
                )
                outcome = ChannelResult.failed(
                    channel,
                    f"Unexpected error: {outcome}",
                    attempts=attempts[channel].count,
                    error_code="INTERNAL_ERROR",
                )
            notification_delivery_total.labels(channel=channel.value, outcome=outcome.outcome.value).inc()
            results.append(outcome)
        return results

    async def _deliver_channel(self, notification: Notification, attempt: DeliveryAttempt) -> ChannelResult:
        adapter = self.adapters[attempt.channel]
        channel_log = get_logger(__name__, notification_id=notification.id, channel=attempt.channel.value)
        try:
            result = await asyncio.wait_for(
                adapter.deliver(notification, attempt),
                timeout=self.settings.channel_timeout,
            )
        except TimeoutError:
            channel_log.error(
                "Channel delivery timed out",
                extra={"timeout": self.settings.channel_timeout, "attempts": attempt.count},
            )
            return ChannelResult.failed(
                attempt.channel,
                f"Channel timed out after {self.settings.channel_timeout}s",
                attempts=attempt.count,
                error_code="TIMEOUT",
                retryable=True,
            )

        if result.success:
            channel_log.info("Channel delivered", extra={"attempts": result.attempts})
        else:
            channel_log.warning(
                "Channel delivery failed",
                extra={"attempts": result.attempts, "error": result.error, "error_code": result.error_code},
            )
        return result

    async def _finalize(self, notification: Notification, results: list[ChannelResult]) -> Notification:
        status = aggregate_status(results, deliver_when_no_channels=self.settings.deliver_when_no_channels)
        notification_status_total.labels(status=status.value).inc()

        persisted = await self.repository.update_delivery_status(
            notification.id,
            status,
            delivered_at=datetime.now(UTC) if status is DeliveryStatus.DELIVERED else None,
        )
        await self.publisher.publish(persisted.id, persisted.delivery_status)

        persisted.results = results
        logger.info(
            "Notification dispatch finished",
            extra={
                "notification_id": persisted.id,
                "status": persisted.delivery_status.value,
                "channels": {r.channel.value: r.outcome.value for r in results},
            },
        )
        return persisted

    async def _get_or_raise(self, notification_id: str) -> Notification:
        notification = await self.repository.get(notification_id)
        if notification is None:
            raise NotFoundException(
                detail=f"Notification {notification_id} not found",
                extra={"notification_id": notification_id},
            )
        return notification

    @staticmethod
    def _validate(request: NotificationRequest | Mapping[str, Any]) -> NotificationRequest:
        if isinstance(request, NotificationRequest):
            # model_construct() skips validation; re-check the invariants that matter here
            if not request.recipient_id or not request.recipient_id.strip():
                raise ValidationException(
                    detail="recipient_id must not be empty",
                    extra={"field": "recipient_id"},
                )
            return request
        try:
            return NotificationRequest.model_validate(request)
        except ValidationError as e:
            raise ValidationException(
                detail="Invalid notification request",
                extra={"errors": e.errors(include_url=False)},
            ) from e
