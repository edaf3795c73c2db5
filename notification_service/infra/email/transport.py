"""Pooled SMTP transport with template rendering and a failover endpoint.

One ``send`` call is one attempt: retry policy belongs to the caller. Every
failure is returned as a failed ``EmailDeliveryResult`` carrying an
``error_code``; nothing raises out of ``send``/``send_via_failover`` except
cancellation.
"""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from datetime import UTC, datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
import logging
import time
from typing import TYPE_CHECKING, Any
import uuid

import aiosmtplib

from notification_service.core.exceptions import InvalidTemplateException, TransportException
from notification_service.infra.email.metrics import (
    email_delivery_duration_seconds,
    email_delivery_total,
    email_failover_total,
)
from notification_service.infra.email.pool import SMTPConnectionPool
from notification_service.infra.email.schemas import EmailDeliveryResult
from notification_service.infra.email.templates import TemplateCache

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from notification_service.core.settings.email import EmailSettings, SMTPEndpoint
    from notification_service.infra.email.pool import SMTPClient
    from notification_service.infra.email.throttle import SendRateLimiter

logger = logging.getLogger(__name__)

DEFAULT_RECORD_LIMIT = 10_000


class EmailTransport:
    """Deliver rendered messages through pooled SMTP connections.

    Example:
        transport = EmailTransport.from_settings(settings, throttle=throttle)
        result = await transport.send(
            "user@example.com",
            "Task assigned",
            "task_assigned",
            {"title": "Review PR"},
        )
        if not result.success and result.retryable:
            ...
    """

    def __init__(
        self,
        settings: EmailSettings,
        templates: TemplateCache,
        primary_pool: SMTPConnectionPool,
        failover_pool: SMTPConnectionPool | None = None,
        throttle: SendRateLimiter | None = None,
        record_limit: int = DEFAULT_RECORD_LIMIT,
    ) -> None:
        self.settings = settings
        self.templates = templates
        self.primary_pool = primary_pool
        self.failover_pool = failover_pool
        self.throttle = throttle
        self._record_limit = record_limit
        self._records: OrderedDict[str, EmailDeliveryResult] = OrderedDict()

    @classmethod
    def from_settings(
        cls,
        settings: EmailSettings,
        *,
        templates: TemplateCache | None = None,
        throttle: SendRateLimiter | None = None,
        client_factory: Callable[[SMTPEndpoint], SMTPClient] | None = None,
    ) -> EmailTransport:
        def make_pool(endpoint: SMTPEndpoint) -> SMTPConnectionPool:
            return SMTPConnectionPool(
                endpoint,
                max_connections=settings.pool_max_connections,
                max_messages=settings.pool_max_messages,
                client_factory=client_factory,
            )

        failover = settings.failover_endpoint
        return cls(
            settings,
            templates or TemplateCache.from_settings(settings),
            make_pool(settings.primary_endpoint),
            make_pool(failover) if failover is not None else None,
            throttle=throttle,
        )

    @property
    def failover_enabled(self) -> bool:
        return self.failover_pool is not None

    async def send(
        self,
        to: str,
        subject: str,
        template_name: str,
        context: Mapping[str, Any],
        *,
        message_id: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> EmailDeliveryResult:
        """Render ``template_name`` and send it once through the primary pool."""
        return await self._send(
            self.primary_pool,
            to,
            subject,
            template_name,
            context,
            message_id=message_id,
            headers=headers,
        )

    async def send_via_failover(
        self,
        to: str,
        subject: str,
        template_name: str,
        context: Mapping[str, Any],
        *,
        message_id: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> EmailDeliveryResult:
        """Same contract as ``send`` over the secondary endpoint.

        Messages carry ``X-Failover: true``. Without a configured failover
        endpoint this returns a ``FAILOVER_DISABLED`` failure.
        """
        if self.failover_pool is None:
            result = EmailDeliveryResult.failure_result(
                endpoint="failover",
                error="Failover endpoint is not configured",
                error_code="FAILOVER_DISABLED",
                message_id=message_id,
            )
            email_failover_total.labels(status="disabled").inc()
            return self._record(result)

        result = await self._send(
            self.failover_pool,
            to,
            subject,
            template_name,
            context,
            message_id=message_id,
            headers={**(headers or {}), "X-Failover": "true"},
        )
        email_failover_total.labels(status="success" if result.success else "failed").inc()
        return result

    async def _send(
        self,
        pool: SMTPConnectionPool,
        to: str,
        subject: str,
        template_name: str,
        context: Mapping[str, Any],
        *,
        message_id: str | None,
        headers: Mapping[str, str] | None,
    ) -> EmailDeliveryResult:
        endpoint = pool.endpoint.name
        message_id = message_id or uuid.uuid4().hex
        started = time.perf_counter()

        def elapsed_ms() -> int:
            return int((time.perf_counter() - started) * 1000)

        try:
            html, text = self.templates.render(template_name, context)
        except InvalidTemplateException as e:
            logger.error(
                "Email template unavailable",
                extra={"template": template_name, "message_id": message_id, "error": e.detail},
            )
            return self._record(
                EmailDeliveryResult.failure_result(
                    endpoint=endpoint,
                    error=e.detail,
                    error_code="INVALID_TEMPLATE",
                    message_id=message_id,
                    metadata={"template": template_name},
                ),
            )

        mime_message = self._build_mime_message(
            to,
            subject,
            html,
            text,
            message_id=message_id,
            host=pool.endpoint.host,
            headers=headers,
        )

        if self.throttle is not None:
            await self.throttle.acquire()

        try:
            async with pool.connection() as smtp:
                errors, response = await smtp.send_message(mime_message)
        except TransportException as e:
            result = EmailDeliveryResult.failure_result(
                endpoint=endpoint,
                error=e.detail,
                error_code=e.error_code,
                message_id=message_id,
                duration_ms=elapsed_ms(),
            )
        except aiosmtplib.SMTPAuthenticationError as e:
            result = EmailDeliveryResult.failure_result(
                endpoint=endpoint,
                error=f"SMTP authentication failed: {e}",
                error_code="AUTH_FAILED",
                message_id=message_id,
                duration_ms=elapsed_ms(),
            )
        except aiosmtplib.SMTPRecipientsRefused as e:
            result = EmailDeliveryResult.failure_result(
                endpoint=endpoint,
                error=f"All recipients refused: {e}",
                error_code="RECIPIENTS_REFUSED",
                message_id=message_id,
                duration_ms=elapsed_ms(),
            )
        except (aiosmtplib.SMTPTimeoutError, TimeoutError) as e:
            result = EmailDeliveryResult.failure_result(
                endpoint=endpoint,
                error=f"SMTP timeout: {e}",
                error_code="TIMEOUT",
                message_id=message_id,
                duration_ms=elapsed_ms(),
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            result = EmailDeliveryResult.failure_result(
                endpoint=endpoint,
                error=f"SMTP error: {e}",
                error_code="TRANSPORT_ERROR",
                message_id=message_id,
                duration_ms=elapsed_ms(),
            )
        else:
            if errors:
                logger.warning(
                    "Some SMTP recipients rejected",
                    extra={
                        "message_id": message_id,
                        "errors": {k: str(v) for k, v in errors.items()},
                    },
                )
            result = EmailDeliveryResult.success_result(
                message_id=message_id,
                endpoint=endpoint,
                duration_ms=elapsed_ms(),
                metadata={"response": str(response), "template": template_name},
            )

        email_delivery_total.labels(
            endpoint=endpoint,
            status="success" if result.success else (result.error_code or "error").lower(),
        ).inc()
        email_delivery_duration_seconds.labels(endpoint=endpoint).observe(
            (time.perf_counter() - started),
        )

        if result.success:
            logger.info(
                "Email sent",
                extra={"endpoint": endpoint, "message_id": message_id, "duration_ms": result.duration_ms},
            )
        else:
            logger.warning(
                "Email send failed",
                extra={
                    "endpoint": endpoint,
                    "message_id": message_id,
                    "error": result.error,
                    "error_code": result.error_code,
                },
            )
        return self._record(result)

    def _build_mime_message(
        self,
        to: str,
        subject: str,
        html: str,
        text: str,
        *,
        message_id: str,
        host: str,
        headers: Mapping[str, str] | None,
    ) -> MIMEMultipart:
        mime_msg = MIMEMultipart("alternative")

        from_email = str(self.settings.from_email)
        from_name = self.settings.from_name
        mime_msg["From"] = f"{from_name} <{from_email}>" if from_name else from_email
        mime_msg["To"] = to
        mime_msg["Subject"] = subject
        mime_msg["Message-ID"] = f"<{message_id}@{host}>"
        mime_msg["Date"] = datetime.now(UTC).strftime("%a, %d %b %Y %H:%M:%S +0000")

        if self.settings.reply_to:
            mime_msg["Reply-To"] = str(self.settings.reply_to)

        for key, value in {**self.settings.default_headers, **(headers or {})}.items():
            mime_msg[key] = value
        mime_msg["X-Message-ID"] = message_id

        mime_msg.attach(MIMEText(text, "plain", "utf-8"))
        mime_msg.attach(MIMEText(html, "html", "utf-8"))
        return mime_msg

    def _record(self, result: EmailDeliveryResult) -> EmailDeliveryResult:
        if result.message_id is None:
            return result
        self._records[result.message_id] = result
        self._records.move_to_end(result.message_id)
        while len(self._records) > self._record_limit:
            self._records.popitem(last=False)
        return result

    def get_delivery_record(self, message_id: str) -> EmailDeliveryResult | None:
        """Last result recorded for ``message_id``, if still retained."""
        return self._records.get(message_id)

    async def aclose(self) -> None:
        pools = [self.primary_pool]
        if self.failover_pool is not None:
            pools.append(self.failover_pool)
        await asyncio.gather(*(pool.close() for pool in pools))
