"""Notification persistence boundary.

The durable store is an external collaborator; the dispatcher only needs
the operations declared by ``NotificationRepository``. The in-memory
implementation backs a single-process deployment and the tests.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
import logging
from typing import Protocol, runtime_checkable

from notification_service.core.exceptions import NotFoundException
from notification_service.features.notifications.models import DeliveryStatus, Notification

logger = logging.getLogger(__name__)


@runtime_checkable
class NotificationRepository(Protocol):
    async def save(self, notification: Notification) -> Notification: ...

    async def get(self, notification_id: str) -> Notification | None: ...

    async def update_delivery_status(
        self,
        notification_id: str,
        status: DeliveryStatus,
        delivered_at: datetime | None = None,
    ) -> Notification:
        """Persist ``status`` and return the stored record.

        Statuses only move forward (PENDING -> FAILED -> DELIVERED); a
        backward transition leaves the record unchanged. ``delivered_at`` is
        written only if the record has none yet.

        Raises:
            NotFoundException: If the notification does not exist.
        """
        ...

    async def list_for_recipient(
        self,
        recipient_id: str,
        limit: int = 50,
        *,
        include_expired: bool = False,
    ) -> list[Notification]: ...


class InMemoryNotificationRepository:
    """Process-local repository; returns copies so callers never share state."""

    def __init__(self) -> None:
        self._items: dict[str, Notification] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._items)

    async def save(self, notification: Notification) -> Notification:
        async with self._lock:
            stored = notification.model_copy(deep=True, update={"results": []})
            self._items[notification.id] = stored
            logger.debug("Notification saved", extra={"notification_id": notification.id})
            return stored.model_copy(deep=True)

    async def get(self, notification_id: str) -> Notification | None:
        async with self._lock:
            stored = self._items.get(notification_id)
            return stored.model_copy(deep=True) if stored is not None else None

    async def update_delivery_status(
        self,
        notification_id: str,
        status: DeliveryStatus,
        delivered_at: datetime | None = None,
    ) -> Notification:
        async with self._lock:
            stored = self._items.get(notification_id)
            if stored is None:
                raise NotFoundException(
                    detail=f"Notification {notification_id} not found",
                    extra={"notification_id": notification_id},
                )
            if not stored.mark_status(status, at=delivered_at or datetime.now(UTC)):
                logger.info(
                    "Ignoring backward status transition",
                    extra={
                        "notification_id": notification_id,
                        "current": stored.delivery_status.value,
                        "requested": status.value,
                    },
                )
            return stored.model_copy(deep=True)

    async def list_for_recipient(
        self,
        recipient_id: str,
        limit: int = 50,
        *,
        include_expired: bool = False,
    ) -> list[Notification]:
        """Newest first; expired notifications are skipped unless requested."""
        now = datetime.now(UTC)
        async with self._lock:
            matches = [
                n
                for n in self._items.values()
                if n.recipient_id == recipient_id and (include_expired or not n.is_expired(now))
            ]
        matches.sort(key=lambda n: n.created_at, reverse=True)
        return [n.model_copy(deep=True) for n in matches[:limit]]
