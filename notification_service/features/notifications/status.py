"""Status broadcast over the pub/sub bus.

``StatusPublisher`` announces every persisted status on
``notification:status`` as ``{"notificationId": ..., "status": ...}``.
``StatusListener`` consumes those messages and applies them to a
repository (e.g. another instance's read model), and turns messages
flagged with ``"redeliver": true`` into re-delivery requests.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from notification_service.core.exceptions import NotFoundException, PublishException
from notification_service.features.notifications.metrics import (
    notification_status_messages_total,
    notification_status_publish_failures_total,
    notification_status_published_total,
)
from notification_service.features.notifications.models import DeliveryStatus

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from notification_service.features.notifications.repository import NotificationRepository
    from notification_service.infra.messaging import MessageBus, Unsubscribe

logger = logging.getLogger(__name__)

DEFAULT_STATUS_TOPIC = "notification:status"


def status_payload(notification_id: str, status: DeliveryStatus, *, redeliver: bool = False) -> dict[str, Any]:
    payload: dict[str, Any] = {"notificationId": notification_id, "status": status.value}
    if redeliver:
        payload["redeliver"] = True
    return payload


class StatusPublisher:
    """Best-effort status broadcaster.

    Status is persisted before publishing, so a failed publish only delays
    real-time propagation. Failures are logged and counted, never raised
    and never retried.
    """

    def __init__(self, bus: MessageBus, topic: str = DEFAULT_STATUS_TOPIC) -> None:
        self.bus = bus
        self.topic = topic

    async def publish(self, notification_id: str, status: DeliveryStatus) -> bool:
        """Broadcast ``status``. Returns False if the bus rejected it."""
        try:
            await self.bus.publish(self.topic, status_payload(notification_id, status))
        except PublishException as e:
            notification_status_publish_failures_total.inc()
            logger.error(
                "Failed to publish notification status",
                extra={"notification_id": notification_id, "status": status.value, "error": e.detail},
            )
            return False
        except Exception as e:
            notification_status_publish_failures_total.inc()
            logger.exception(
                "Unexpected error publishing notification status",
                extra={"notification_id": notification_id, "status": status.value, "error": str(e)},
            )
            return False

        notification_status_published_total.labels(status=status.value).inc()
        logger.debug(
            "Published notification status",
            extra={"notification_id": notification_id, "status": status.value},
        )
        return True

    async def request_redelivery(self, notification_id: str) -> bool:
        """Ask whichever instance runs a ``StatusListener`` to redeliver."""
        try:
            await self.bus.publish(
                self.topic,
                status_payload(notification_id, DeliveryStatus.PENDING, redeliver=True),
            )
        except PublishException as e:
            notification_status_publish_failures_total.inc()
            logger.error(
                "Failed to publish redelivery request",
                extra={"notification_id": notification_id, "error": e.detail},
            )
            return False
        return True


class StatusListener:
    """Apply status broadcasts to a repository.

    Updates are idempotent: statuses only move forward and ``delivered_at``
    is stamped at most once. Malformed messages are logged and dropped.

    Example:
        listener = StatusListener(bus, repository, redeliver=engine.redeliver)
        await listener.start()
        ...
        await listener.stop()
    """

    def __init__(
        self,
        bus: MessageBus,
        repository: NotificationRepository,
        topic: str = DEFAULT_STATUS_TOPIC,
        redeliver: Callable[[str], Awaitable[Any]] | None = None,
    ) -> None:
        self.bus = bus
        self.repository = repository
        self.topic = topic
        self.redeliver = redeliver
        self._unsubscribe: Unsubscribe | None = None

    @property
    def running(self) -> bool:
        return self._unsubscribe is not None

    async def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = await self.bus.subscribe(self.topic, self.handle)
            logger.info("Status listener started", extra={"topic": self.topic})

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            unsubscribe, self._unsubscribe = self._unsubscribe, None
            await unsubscribe()
            logger.info("Status listener stopped", extra={"topic": self.topic})

    async def handle(self, message: Any) -> None:
        parsed = self._parse(message)
        if parsed is None:
            notification_status_messages_total.labels(result="malformed").inc()
            logger.warning(
                "Dropping malformed status message",
                extra={"topic": self.topic, "payload": str(message)[:200]},
            )
            return

        notification_id, status, redeliver = parsed
        try:
            if redeliver:
                if self.redeliver is None:
                    logger.info(
                        "Redelivery requested but no redeliver handler configured",
                        extra={"notification_id": notification_id},
                    )
                    return
                await self.redeliver(notification_id)
                notification_status_messages_total.labels(result="redelivered").inc()
                return

            await self.repository.update_delivery_status(notification_id, status)
            notification_status_messages_total.labels(result="applied").inc()
        except NotFoundException:
            notification_status_messages_total.labels(result="not_found").inc()
            logger.warning(
                "Status message for unknown notification",
                extra={"notification_id": notification_id, "status": status.value},
            )

    @staticmethod
    def _parse(message: Any) -> tuple[str, DeliveryStatus, bool] | None:
        if not isinstance(message, dict):
            return None
        notification_id = message.get("notificationId")
        raw_status = message.get("status")
        if not isinstance(notification_id, str) or not notification_id or not isinstance(raw_status, str):
            return None
        try:
            status = DeliveryStatus(raw_status)
        except ValueError:
            return None
        return notification_id, status, message.get("redeliver") is True
