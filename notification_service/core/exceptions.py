"""Exception hierarchy for the notification service.

Errors are shaped after RFC 7807 Problem Details (``status_code``,
``type``, ``title``, ``detail``, ``instance``, ``extra``) so an outer
HTTP or RPC layer can render them without translation.

Only ``RateLimitException``, ``ValidationException`` and
``NotFoundException`` reach callers of the dispatcher. The
``DeliveryException`` family is raised inside transports and converted
into failed channel results by the adapters.
"""

from __future__ import annotations

from typing import Any


class AppException(Exception):
    """Base application exception.

    Subclasses set ``status_code``, ``type`` and ``title`` as class
    attributes; ``status_code`` may be overridden per instance.

    Example:
        raise NotFoundException(
            "Notification abc123 not found",
            extra={"notification_id": "abc123"},
        )
    """

    status_code: int = 500
    type: str = "about:blank"
    title: str = "Internal Server Error"

    def __init__(
        self,
        detail: str,
        *,
        extra: dict[str, Any] | None = None,
        instance: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.detail = detail
        self.extra = extra or {}
        self.instance = instance
        if status_code is not None:
            self.status_code = status_code
        super().__init__(detail)

    def to_problem(self) -> dict[str, Any]:
        """Problem Details document for this error."""
        problem: dict[str, Any] = {
            "type": self.type,
            "title": self.title,
            "status": self.status_code,
            "detail": self.detail,
        }
        if self.instance:
            problem["instance"] = self.instance
        problem.update(self.extra)
        return problem


class NotFoundException(AppException):
    """A notification (or other resource) does not exist."""

    status_code = 404
    type = "not-found"
    title = "Not Found"


class ValidationException(AppException):
    """A notification request or preferences update is invalid.

    ``extra["errors"]`` carries the pydantic error list when available.
    """

    status_code = 422
    type = "validation-error"
    title = "Validation Error"


class RateLimitException(AppException):
    """A recipient exceeded its admission budget.

    No notification record exists when this is raised; callers may retry
    after ``extra["retry_after"]`` seconds.
    """

    status_code = 429
    type = "rate-limit-exceeded"
    title = "Too Many Requests"


class DeliveryException(AppException):
    """Base for channel-level failures."""

    status_code = 502
    type = "delivery-error"
    title = "Delivery Failed"
    retryable: bool = False


class InvalidTemplateException(DeliveryException):
    """An e-mail template is missing or failed to compile or render."""

    status_code = 500
    type = "invalid-template"

    def __init__(self, template_name: str | None, detail: str | None = None) -> None:
        super().__init__(
            detail or f"Invalid template: {template_name}",
            extra={"template": template_name},
        )
        self.template_name = template_name


class TransportException(DeliveryException):
    """An SMTP or network operation failed during a send attempt."""

    type = "transport-error"
    retryable = True

    def __init__(
        self,
        detail: str,
        *,
        endpoint: str | None = None,
        error_code: str = "TRANSPORT_ERROR",
    ) -> None:
        super().__init__(detail, extra={"endpoint": endpoint, "error_code": error_code})
        self.endpoint = endpoint
        self.error_code = error_code


class PublishException(DeliveryException):
    """The pub/sub bus rejected a publish call."""

    status_code = 503
    type = "publish-error"
    retryable = True

    def __init__(self, topic: str, detail: str) -> None:
        super().__init__(detail, extra={"topic": topic})
        self.topic = topic
