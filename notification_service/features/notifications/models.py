"""Domain models for notifications and recipient preferences.

Wire payloads use camelCase keys; Python attributes stay snake_case
(``populate_by_name`` accepts either on input).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, time, timedelta
from enum import StrEnum
import re
from typing import Any
from uuid import uuid4
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def _normalize_enum_name(value: str) -> str:
    """``TaskAssigned`` / ``task-assigned`` / ``task_assigned`` -> ``TASK_ASSIGNED``."""
    return _CAMEL_BOUNDARY.sub("_", value.strip()).replace("-", "_").upper()


class NotificationType(StrEnum):
    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_UPDATED = "TASK_UPDATED"
    TASK_COMPLETED = "TASK_COMPLETED"
    PROJECT_CREATED = "PROJECT_CREATED"
    PROJECT_UPDATED = "PROJECT_UPDATED"
    COMMENT_ADDED = "COMMENT_ADDED"
    MENTION = "MENTION"
    SYSTEM = "SYSTEM"

    @classmethod
    def _missing_(cls, value: object) -> NotificationType | None:
        if isinstance(value, str):
            return cls.__members__.get(_normalize_enum_name(value))
        return None


class NotificationPriority(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"

    @classmethod
    def _missing_(cls, value: object) -> NotificationPriority | None:
        if isinstance(value, str):
            return cls.__members__.get(value.strip().upper())
        return None

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    def meets(self, threshold: NotificationPriority) -> bool:
        """True when this priority is at or above ``threshold``."""
        return self.rank >= threshold.rank


_PRIORITY_RANK = {
    NotificationPriority.LOW: 0,
    NotificationPriority.MEDIUM: 1,
    NotificationPriority.HIGH: 2,
    NotificationPriority.URGENT: 3,
}


class DeliveryStatus(StrEnum):
    PENDING = "PENDING"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"

    @classmethod
    def _missing_(cls, value: object) -> DeliveryStatus | None:
        if isinstance(value, str):
            return cls.__members__.get(value.strip().upper())
        return None

    def can_become(self, new: DeliveryStatus) -> bool:
        """Statuses only move forward: PENDING -> FAILED -> DELIVERED."""
        return _STATUS_ORDER[new] >= _STATUS_ORDER[self]


_STATUS_ORDER = {
    DeliveryStatus.PENDING: 0,
    DeliveryStatus.FAILED: 1,
    DeliveryStatus.DELIVERED: 2,
}


class Channel(StrEnum):
    EMAIL = "email"
    IN_APP = "in_app"
    PUSH = "push"

    @classmethod
    def _missing_(cls, value: object) -> Channel | None:
        if isinstance(value, str):
            normalized = _normalize_enum_name(value).lower()
            if normalized == "inapp":
                return cls.IN_APP
            for member in cls:
                if member.value == normalized:
                    return member
        return None


class DeliveryOutcome(StrEnum):
    DELIVERED = "DELIVERED"
    RETRYABLE_FAILURE = "RETRYABLE_FAILURE"
    TERMINAL_FAILURE = "TERMINAL_FAILURE"


@dataclass(frozen=True)
class ChannelResult:
    """Outcome of delivering one notification through one channel.

    Attributes:
        channel: Channel that produced the result
        outcome: Delivered, or a failure another attempt could (not) fix
        attempts: Send attempts made, failover included
        error: Error description if failed
        error_code: Error category (``TRANSPORT_ERROR``, ``INVALID_TEMPLATE``...)
    """

    channel: Channel
    outcome: DeliveryOutcome
    attempts: int = 0
    error: str | None = None
    error_code: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def success(self) -> bool:
        return self.outcome is DeliveryOutcome.DELIVERED

    @classmethod
    def delivered(cls, channel: Channel, attempts: int = 1) -> ChannelResult:
        return cls(channel=channel, outcome=DeliveryOutcome.DELIVERED, attempts=attempts)

    @classmethod
    def failed(
        cls,
        channel: Channel,
        error: str,
        *,
        attempts: int = 0,
        error_code: str | None = None,
        retryable: bool = False,
    ) -> ChannelResult:
        return cls(
            channel=channel,
            outcome=DeliveryOutcome.RETRYABLE_FAILURE if retryable else DeliveryOutcome.TERMINAL_FAILURE,
            attempts=attempts,
            error=error,
            error_code=error_code,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel": self.channel.value,
            "success": self.success,
            "outcome": self.outcome.value,
            "attempts": self.attempts,
            "error": self.error,
            "errorCode": self.error_code,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class DeliveryAttempt:
    """Attempt counter for one (notification, channel) pair within one dispatch."""

    notification_id: str
    channel: Channel
    count: int = 0

    def record(self) -> int:
        self.count += 1
        return self.count


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NotificationRequest(CamelModel):
    """Input to ``NotificationDispatcher.create``."""

    type: NotificationType
    title: str = Field(default="", max_length=255)
    message: str = Field(default="")
    recipient_id: str = Field(..., min_length=1, max_length=255)
    sender_id: str | None = None
    priority: NotificationPriority = NotificationPriority.MEDIUM
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("recipient_id")
    @classmethod
    def validate_recipient_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            msg = "recipient_id must not be empty"
            raise ValueError(msg)
        return v

    @field_validator("priority", mode="before")
    @classmethod
    def default_priority(cls, v: Any) -> Any:
        return NotificationPriority.MEDIUM if v is None else v


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Notification(CamelModel):
    """The unit of delivery, as persisted."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    type: NotificationType
    title: str = ""
    message: str = ""
    recipient_id: str
    sender_id: str | None = None
    priority: NotificationPriority = NotificationPriority.MEDIUM
    metadata: dict[str, Any] = Field(default_factory=dict)
    delivery_status: DeliveryStatus = DeliveryStatus.PENDING
    created_at: datetime = Field(default_factory=_utcnow)
    delivered_at: datetime | None = None
    read_at: datetime | None = None
    expires_at: datetime | None = None
    read: bool = False

    # Channel results of the latest dispatch; never persisted
    results: list[ChannelResult] = Field(default_factory=list, exclude=True)

    @classmethod
    def from_request(cls, request: NotificationRequest, *, expiry_days: int | None = None) -> Notification:
        notification = cls(
            type=request.type,
            title=request.title,
            message=request.message,
            recipient_id=request.recipient_id,
            sender_id=request.sender_id,
            priority=request.priority,
            metadata=dict(request.metadata),
        )
        if expiry_days:
            notification.expires_at = notification.created_at + timedelta(days=expiry_days)
        return notification

    def mark_status(self, status: DeliveryStatus, at: datetime | None = None) -> bool:
        """Apply a status transition. Returns False when it was ignored.

        Backward transitions (e.g. DELIVERED -> FAILED from a stale message or
        a failed redelivery) are ignored; ``delivered_at`` is stamped only once.
        """
        if not self.delivery_status.can_become(status):
            return False
        self.delivery_status = status
        if status is DeliveryStatus.DELIVERED and self.delivered_at is None:
            self.delivered_at = at or _utcnow()
        return True

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at is not None and (now or _utcnow()) >= self.expires_at

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready camelCase representation."""
        return self.model_dump(mode="json", by_alias=True)


class QuietHours(CamelModel):
    """Daily window (recipient local time) during which nothing is delivered.

    ``start > end`` describes a window spanning midnight (e.g. 22:00-07:00).
    """

    start: time
    end: time
    timezone: str = "UTC"

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            msg = f"Unknown timezone: {v}"
            raise ValueError(msg) from e
        return v

    def contains(self, moment: datetime) -> bool:
        if self.start == self.end:
            return False
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=UTC)
        local = moment.astimezone(ZoneInfo(self.timezone)).time()
        if self.start < self.end:
            return self.start <= local < self.end
        return local >= self.start or local < self.end


class NotificationPreferences(CamelModel):
    """Resolved per-recipient preferences (read-only input to the dispatcher)."""

    email_enabled: bool = True
    in_app_enabled: bool = True
    push_enabled: bool = False
    muted_types: set[NotificationType] = Field(default_factory=set)
    priority_threshold: NotificationPriority = NotificationPriority.LOW
    # Raw channel names; unknown names are dropped at resolution time
    delivery_channels: dict[NotificationType, list[str]] = Field(default_factory=dict)
    quiet_hours: QuietHours | None = None

    def enabled_channels(self) -> list[Channel]:
        flags = [
            (Channel.EMAIL, self.email_enabled),
            (Channel.IN_APP, self.in_app_enabled),
            (Channel.PUSH, self.push_enabled),
        ]
        return [channel for channel, enabled in flags if enabled]
