"""E-mail delivery infrastructure.

Components:
- ``TemplateCache``: Jinja2 templates compiled at startup
- ``SMTPConnectionPool``: bounded aiosmtplib connection pool per endpoint
- ``SendRateLimiter``: global send-rate ceiling (token bucket)
- ``EmailTransport``: one send attempt via the primary or failover endpoint
"""

from __future__ import annotations

from notification_service.infra.email.pool import SMTPConnectionPool, create_smtp_client
from notification_service.infra.email.schemas import EmailDeliveryResult
from notification_service.infra.email.templates import TemplateCache, html_to_text
from notification_service.infra.email.throttle import SendRateLimiter
from notification_service.infra.email.transport import EmailTransport

__all__ = [
    "EmailDeliveryResult",
    "EmailTransport",
    "SMTPConnectionPool",
    "SendRateLimiter",
    "TemplateCache",
    "create_smtp_client",
    "html_to_text",
]
