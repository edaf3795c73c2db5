"""Pytest configuration and shared fixtures.

Fixtures are organized by category:
    - Settings Fixtures: isolated settings instances and cache reset
    - SMTP Fixtures: a fake SMTP server standing in for aiosmtplib
    - Delivery Fixtures: templates, transport and a fully wired dispatcher
      over in-memory collaborators

No fixture needs Redis or a real SMTP relay.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import pytest

from notification_service.core.settings import clear_settings_cache
from notification_service.core.settings.email import DEFAULT_TEMPLATE_MAPPING, EmailSettings
from notification_service.core.settings.notifications import NotificationSettings
from notification_service.features.notifications.channels import (
    EmailChannelAdapter,
    InAppChannelAdapter,
    PushChannelAdapter,
)
from notification_service.features.notifications.dispatcher import NotificationDispatcher
from notification_service.features.notifications.models import Channel
from notification_service.features.notifications.repository import InMemoryNotificationRepository
from notification_service.features.notifications.status import StatusPublisher
from notification_service.infra.email import EmailTransport, TemplateCache
from notification_service.infra.logging import clear_log_context
from notification_service.infra.messaging import InMemoryMessageBus
from notification_service.infra.ratelimit import InMemoryCounterStore, RateLimiter
from notification_service.utils.retry import RetryScheduler

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from notification_service.core.settings.email import SMTPEndpoint
    from notification_service.features.notifications.channels import ChannelAdapter

TEST_TEMPLATE_SOURCE = "<h1>{{ title }}</h1><p>{{ message }}</p>"
TEST_TEMPLATES = {name: TEST_TEMPLATE_SOURCE for name in DEFAULT_TEMPLATE_MAPPING.values()}


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def _isolate_settings_and_context():
    """Reset cached settings and the logging context around every test."""
    clear_settings_cache()
    clear_log_context()
    yield
    clear_settings_cache()
    clear_log_context()


@pytest.fixture
def notification_settings() -> NotificationSettings:
    """Default delivery settings (3 attempts, 1s base delay)."""
    return NotificationSettings()


@pytest.fixture
def email_settings() -> EmailSettings:
    """Email settings with a failover endpoint and no authentication."""
    return EmailSettings(
        smtp_host="smtp.test",
        use_tls=False,
        failover_enabled=True,
        failover_host="backup.test",
        failover_use_ssl=False,
    )


# ============================================================================
# Utility Fixtures
# ============================================================================


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Drop-in for ``asyncio.sleep`` that records delays instead of waiting.

    When given a clock, sleeping advances it.
    """

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.calls: list[float] = []
        self.clock = clock

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        if self.clock is not None:
            self.clock.advance(delay)
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def clocked_sleep(clock: FakeClock) -> RecordingSleep:
    """Recording sleep that advances ``clock``."""
    return RecordingSleep(clock)


# ============================================================================
# SMTP Fixtures
# ============================================================================


class FakeSMTPServer:
    """Scriptable SMTP relay shared by every fake client it creates.

    Failures are keyed by endpoint name (``primary`` / ``failover``).
    """

    def __init__(self) -> None:
        self.delivered: list[tuple[str, Any]] = []
        self.attempts: defaultdict[str, int] = defaultdict(int)
        self.clients: list[FakeSMTPClient] = []
        self.logins: list[tuple[str, str]] = []
        self.quits = 0
        self.closes = 0
        self.active = 0
        self.peak_active = 0
        self.send_delay = 0.0
        self._queued: defaultdict[str, list[Exception]] = defaultdict(list)
        self._always: dict[str, Exception] = {}

    def fail_next(self, endpoint: str, exc: Exception, times: int = 1) -> None:
        self._queued[endpoint].extend([exc] * times)

    def fail_always(self, endpoint: str, exc: Exception) -> None:
        self._always[endpoint] = exc

    def next_failure(self, endpoint: str) -> Exception | None:
        if self._queued[endpoint]:
            return self._queued[endpoint].pop(0)
        return self._always.get(endpoint)

    def sent_via(self, endpoint: str) -> list[Any]:
        return [message for name, message in self.delivered if name == endpoint]

    @property
    def connections_opened(self) -> int:
        return len(self.clients)

    def factory(self, endpoint: SMTPEndpoint) -> FakeSMTPClient:
        client = FakeSMTPClient(self, endpoint)
        self.clients.append(client)
        return client


class FakeSMTPClient:
    """Implements the subset of ``aiosmtplib.SMTP`` the pool relies on."""

    def __init__(self, server: FakeSMTPServer, endpoint: SMTPEndpoint) -> None:
        self.server = server
        self.endpoint = endpoint
        self.is_connected = False

    async def connect(self) -> None:
        self.is_connected = True

    async def login(self, username: str, password: str) -> None:
        self.server.logins.append((username, password))

    async def send_message(self, message: Any) -> tuple[dict[str, Any], str]:
        server = self.server
        server.attempts[self.endpoint.name] += 1
        server.active += 1
        server.peak_active = max(server.peak_active, server.active)
        try:
            if server.send_delay:
                await asyncio.sleep(server.send_delay)
            failure = server.next_failure(self.endpoint.name)
            if failure is not None:
                raise failure
            server.delivered.append((self.endpoint.name, message))
            return {}, "250 OK"
        finally:
            server.active -= 1

    async def quit(self) -> None:
        self.is_connected = False
        self.server.quits += 1

    def close(self) -> None:
        self.is_connected = False
        self.server.closes += 1


@pytest.fixture
def smtp_server() -> FakeSMTPServer:
    return FakeSMTPServer()


# ============================================================================
# Delivery Fixtures
# ============================================================================


@pytest.fixture
def templates() -> TemplateCache:
    """In-memory templates for every default notification type."""
    return TemplateCache.from_strings(TEST_TEMPLATES)


@pytest.fixture
def transport(email_settings: EmailSettings, templates: TemplateCache, smtp_server: FakeSMTPServer) -> EmailTransport:
    return EmailTransport.from_settings(email_settings, templates=templates, client_factory=smtp_server.factory)


@dataclass
class DeliveryHarness:
    """Dispatcher wired to in-memory collaborators, with handles on each."""

    dispatcher: NotificationDispatcher
    repository: InMemoryNotificationRepository
    bus: InMemoryMessageBus
    store: InMemoryCounterStore
    transport: EmailTransport
    smtp_server: FakeSMTPServer
    sleep: RecordingSleep
    settings: NotificationSettings
    adapters: dict[Channel, Any] = field(default_factory=dict)

    def status_messages(self) -> list[dict[str, Any]]:
        return [payload for topic, payload in self.bus.published if topic == self.settings.status_topic]

    def inbox(self, recipient_id: str) -> list[dict[str, Any]]:
        topic = self.settings.topic_for_recipient(recipient_id)
        return [payload for name, payload in self.bus.published if name == topic]


@pytest.fixture
def build_harness(
    email_settings: EmailSettings,
    templates: TemplateCache,
    smtp_server: FakeSMTPServer,
    recording_sleep: RecordingSleep,
) -> Callable[..., DeliveryHarness]:
    """Factory for a ``DeliveryHarness``.

    Example:
        harness = build_harness(settings=NotificationSettings(rate_limit_points=1))
        await harness.dispatcher.create(request)
    """

    def _build(
        *,
        settings: NotificationSettings | None = None,
        bus: InMemoryMessageBus | None = None,
        adapters: Mapping[Channel, ChannelAdapter] | None = None,
        clock: FakeClock | None = None,
    ) -> DeliveryHarness:
        settings = settings or NotificationSettings()
        bus = bus or InMemoryMessageBus()
        store = InMemoryCounterStore(clock) if clock is not None else InMemoryCounterStore()
        repository = InMemoryNotificationRepository()
        transport = EmailTransport.from_settings(
            email_settings,
            templates=templates,
            client_factory=smtp_server.factory,
        )
        scheduler = RetryScheduler.from_settings(settings)

        if adapters is None:
            adapters = {
                Channel.EMAIL: EmailChannelAdapter(
                    transport,
                    scheduler,
                    template_mapping=email_settings.template_mapping,
                    attempt_timeout=settings.attempt_timeout,
                    sleep=recording_sleep,
                ),
                Channel.IN_APP: InAppChannelAdapter(
                    bus,
                    scheduler,
                    topic_template=settings.recipient_topic,
                    attempt_timeout=settings.attempt_timeout,
                    sleep=recording_sleep,
                ),
                Channel.PUSH: PushChannelAdapter(),
            }

        dispatcher = NotificationDispatcher(
            repository,
            RateLimiter.from_settings(store, settings),
            adapters,
            StatusPublisher(bus, settings.status_topic),
            settings,
        )
        return DeliveryHarness(
            dispatcher=dispatcher,
            repository=repository,
            bus=bus,
            store=store,
            transport=transport,
            smtp_server=smtp_server,
            sleep=recording_sleep,
            settings=settings,
            adapters=dict(adapters),
        )

    return _build
