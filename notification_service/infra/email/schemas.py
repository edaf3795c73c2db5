"""Result types for e-mail delivery."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

# Failures that another attempt cannot fix
TERMINAL_ERROR_CODES = frozenset({"INVALID_TEMPLATE", "INVALID_RECIPIENT", "FAILOVER_DISABLED"})


@dataclass(frozen=True)
class EmailDeliveryResult:
    """Outcome of one send through one SMTP endpoint.

    Transports never raise for delivery problems; they return a failed
    result whose ``error_code`` tells the channel adapter whether another
    attempt (or the failover endpoint) can help.

    Attributes:
        endpoint: ``primary`` or ``failover``
        message_id: ``X-Message-ID`` header value, also the delivery record key
        error_code: ``TRANSPORT_ERROR``, ``AUTH_FAILED``, ``TIMEOUT``, ... on failure
        metadata: Template name and recipient count on success
    """

    success: bool
    message_id: str | None
    endpoint: str
    error: str | None = None
    error_code: str | None = None
    duration_ms: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        if not self.success and not self.error:
            object.__setattr__(self, "error", "Unknown error")

    @property
    def retryable(self) -> bool:
        return not self.success and self.error_code not in TERMINAL_ERROR_CODES

    @classmethod
    def success_result(
        cls,
        message_id: str,
        endpoint: str,
        duration_ms: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> EmailDeliveryResult:
        return cls(
            success=True,
            message_id=message_id,
            endpoint=endpoint,
            duration_ms=duration_ms,
            metadata=metadata or {},
        )

    @classmethod
    def failure_result(
        cls,
        endpoint: str,
        error: str,
        error_code: str | None = None,
        message_id: str | None = None,
        duration_ms: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> EmailDeliveryResult:
        return cls(
            success=False,
            message_id=message_id,
            endpoint=endpoint,
            error=error,
            error_code=error_code,
            duration_ms=duration_ms,
            metadata=metadata or {},
        )
