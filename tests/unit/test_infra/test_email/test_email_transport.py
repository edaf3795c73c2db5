"""Tests for EmailTransport: rendering, SMTP error mapping and failover."""
from __future__ import annotations

import aiosmtplib
import pytest

from notification_service.core.settings.email import EmailSettings
from notification_service.infra.email import EmailTransport, SendRateLimiter
from notification_service.infra.email.schemas import EmailDeliveryResult
from notification_service.infra.ratelimit import InMemoryCounterStore


@pytest.mark.unit
class TestEmailTransportSend:
    """Single send attempts over the primary endpoint."""

    @pytest.mark.asyncio
    async def test_sends_rendered_message(self, transport, smtp_server):
        result = await transport.send(
            "ada@example.com",
            "Task assigned",
            "task_assigned",
            {"title": "Review PR", "message": "Please take a look"},
            message_id="msg-1",
        )

        assert result.success
        assert result.endpoint == "primary"
        assert result.message_id == "msg-1"
        assert result.metadata["template"] == "task_assigned"

        [message] = smtp_server.sent_via("primary")
        assert message["To"] == "ada@example.com"
        assert message["Subject"] == "Task assigned"
        assert message["X-Message-ID"] == "msg-1"
        assert message["Message-ID"] == "<msg-1@smtp.test>"
        assert message["X-Mailer"] == "TaskManagementSystem"
        assert message["X-Failover"] is None

        text_part, html_part = message.get_payload()
        assert text_part.get_content_type() == "text/plain"
        assert html_part.get_content_type() == "text/html"

    @pytest.mark.asyncio
    async def test_extra_headers_are_added(self, transport, smtp_server):
        await transport.send("a@example.com", "s", "system", {}, headers={"X-Priority": "1"})

        [message] = smtp_server.delivered
        assert message[1]["X-Priority"] == "1"

    @pytest.mark.asyncio
    async def test_unknown_template_is_terminal(self, transport, smtp_server):
        result = await transport.send("a@example.com", "s", "no_such_template", {})

        assert not result.success
        assert result.error_code == "INVALID_TEMPLATE"
        assert not result.retryable
        assert smtp_server.attempts["primary"] == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("error", "error_code"),
        [
            (aiosmtplib.SMTPResponseException(451, "Try again later"), "TRANSPORT_ERROR"),
            (aiosmtplib.SMTPServerDisconnected("Connection lost"), "TRANSPORT_ERROR"),
            (aiosmtplib.SMTPAuthenticationError(535, "Bad credentials"), "AUTH_FAILED"),
            (aiosmtplib.SMTPRecipientsRefused([]), "RECIPIENTS_REFUSED"),
            (aiosmtplib.SMTPTimeoutError("Timed out"), "TIMEOUT"),
            (ConnectionRefusedError("refused"), "TRANSPORT_ERROR"),
        ],
    )
    async def test_smtp_errors_become_retryable_results(self, transport, smtp_server, error, error_code):
        smtp_server.fail_next("primary", error)

        result = await transport.send("a@example.com", "s", "system", {})

        assert not result.success
        assert result.error_code == error_code
        assert result.retryable

    @pytest.mark.asyncio
    async def test_records_last_result_per_message(self, transport):
        await transport.send("a@example.com", "s", "system", {}, message_id="m1")

        record = transport.get_delivery_record("m1")

        assert record is not None and record.success
        assert transport.get_delivery_record("unknown") is None

    @pytest.mark.asyncio
    async def test_record_store_is_bounded(self, email_settings, templates, smtp_server):
        base = EmailTransport.from_settings(email_settings, templates=templates, client_factory=smtp_server.factory)
        transport = EmailTransport(email_settings, templates, base.primary_pool, record_limit=2)

        for message_id in ("m1", "m2", "m3"):
            await transport.send("a@example.com", "s", "system", {}, message_id=message_id)

        assert transport.get_delivery_record("m1") is None
        assert transport.get_delivery_record("m3") is not None

    @pytest.mark.asyncio
    async def test_closed_transport_returns_failure(self, transport):
        await transport.aclose()

        result = await transport.send("a@example.com", "s", "system", {})

        assert result.error_code == "POOL_CLOSED"
        assert result.retryable

    @pytest.mark.asyncio
    async def test_waits_for_throttle_token(self, email_settings, templates, smtp_server, clock, clocked_sleep):
        throttle = SendRateLimiter(InMemoryCounterStore(clock), rate=1.0, burst=1, sleep=clocked_sleep)
        transport = EmailTransport.from_settings(
            email_settings,
            templates=templates,
            throttle=throttle,
            client_factory=smtp_server.factory,
        )

        await transport.send("a@example.com", "s", "system", {})
        await transport.send("b@example.com", "s", "system", {})

        assert clocked_sleep.calls == [pytest.approx(1.0)]
        assert len(smtp_server.delivered) == 2


@pytest.mark.unit
class TestEmailTransportFailover:
    """Secondary endpoint."""

    @pytest.mark.asyncio
    async def test_failover_marks_message(self, transport, smtp_server):
        result = await transport.send_via_failover("a@example.com", "s", "system", {}, message_id="m1")

        assert result.success
        assert result.endpoint == "failover"
        [message] = smtp_server.sent_via("failover")
        assert message["X-Failover"] == "true"
        assert message["Message-ID"] == "<m1@backup.test>"

    @pytest.mark.asyncio
    async def test_failover_disabled(self, templates, smtp_server):
        settings = EmailSettings(smtp_host="smtp.test", use_tls=False)
        transport = EmailTransport.from_settings(settings, templates=templates, client_factory=smtp_server.factory)

        result = await transport.send_via_failover("a@example.com", "s", "system", {})

        assert not transport.failover_enabled
        assert result.error_code == "FAILOVER_DISABLED"
        assert not result.retryable
        assert smtp_server.delivered == []


@pytest.mark.unit
class TestEmailDeliveryResult:
    def test_failure_without_error_gets_placeholder(self):
        result = EmailDeliveryResult(success=False, message_id=None, endpoint="primary")

        assert result.error == "Unknown error"

    def test_success_is_never_retryable(self):
        assert not EmailDeliveryResult.success_result("m1", "primary").retryable
