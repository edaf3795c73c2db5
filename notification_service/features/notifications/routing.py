"""Pure routing decisions: eligibility, channel selection, status aggregation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
import logging
from typing import TYPE_CHECKING

from notification_service.features.notifications.models import Channel, DeliveryStatus

if TYPE_CHECKING:
    from collections.abc import Collection, Sequence

    from notification_service.features.notifications.models import (
        ChannelResult,
        Notification,
        NotificationPreferences,
    )

logger = logging.getLogger(__name__)


class SkipReason(StrEnum):
    MUTED_TYPE = "muted_type"
    BELOW_PRIORITY_THRESHOLD = "below_priority_threshold"
    QUIET_HOURS = "quiet_hours"


class ChannelSource(StrEnum):
    """Where a channel selection came from."""

    EXPLICIT = "explicit"  # preferences.delivery_channels[type]
    FLAGS = "flags"  # email/in_app/push booleans


@dataclass(frozen=True)
class ChannelSelection:
    source: ChannelSource
    channels: tuple[Channel, ...]
    dropped: tuple[str, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.channels)


def check_eligibility(
    notification: Notification,
    preferences: NotificationPreferences,
    now: datetime | None = None,
) -> SkipReason | None:
    """Return why ``notification`` must not be delivered, or None if it may be."""
    if notification.type in preferences.muted_types:
        return SkipReason.MUTED_TYPE
    if not notification.priority.meets(preferences.priority_threshold):
        return SkipReason.BELOW_PRIORITY_THRESHOLD
    if preferences.quiet_hours is not None and preferences.quiet_hours.contains(now or datetime.now(UTC)):
        return SkipReason.QUIET_HOURS
    return None


def resolve_channels(
    notification: Notification,
    preferences: NotificationPreferences,
    enabled: Collection[Channel] | None = None,
) -> ChannelSelection:
    """Select channels for ``notification``.

    An explicit, non-empty ``delivery_channels[type]`` wins; otherwise the
    boolean flags decide. Unknown, duplicate and service-disabled channels
    are dropped, order is preserved.
    """
    explicit = preferences.delivery_channels.get(notification.type)
    if explicit:
        source = ChannelSource.EXPLICIT
        names: Sequence[str] = explicit
    else:
        source = ChannelSource.FLAGS
        names = [channel.value for channel in preferences.enabled_channels()]

    channels: list[Channel] = []
    dropped: list[str] = []
    for name in names:
        try:
            channel = Channel(name)
        except ValueError:
            dropped.append(name)
            continue
        if channel in channels or (enabled is not None and channel not in enabled):
            dropped.append(name)
            continue
        channels.append(channel)

    if dropped:
        logger.warning(
            "Dropped channels during resolution",
            extra={
                "notification_id": notification.id,
                "source": source.value,
                "dropped": dropped,
            },
        )

    return ChannelSelection(source=source, channels=tuple(channels), dropped=tuple(dropped))


def aggregate_status(
    results: Sequence[ChannelResult],
    *,
    deliver_when_no_channels: bool = False,
) -> DeliveryStatus:
    """Compute the final status once every channel result is in.

    Any success means DELIVERED; all failures mean FAILED. No results at all
    leaves the notification PENDING unless ``deliver_when_no_channels``.
    """
    if not results:
        return DeliveryStatus.DELIVERED if deliver_when_no_channels else DeliveryStatus.PENDING
    if any(result.success for result in results):
        return DeliveryStatus.DELIVERED
    return DeliveryStatus.FAILED
