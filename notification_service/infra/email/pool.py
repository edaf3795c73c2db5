"""Bounded SMTP connection pool.

At most ``max_connections`` connections are checked out at once; further
callers queue on a semaphore instead of opening new connections. A
connection is closed and replaced after ``max_messages`` sends, and is
discarded whenever a send over it fails.
"""

from __future__ import annotations

import asyncio
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
import logging
import ssl
import time
from typing import TYPE_CHECKING, Any, Protocol

import aiosmtplib

from notification_service.core.exceptions import TransportException
from notification_service.infra.email.metrics import (
    smtp_connections_in_use,
    smtp_connections_opened_total,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable
    from email.message import Message

    from notification_service.core.settings.email import SMTPEndpoint

logger = logging.getLogger(__name__)


class SMTPClient(Protocol):
    """Subset of ``aiosmtplib.SMTP`` used by the pool."""

    @property
    def is_connected(self) -> bool: ...

    async def connect(self) -> Any: ...

    async def login(self, username: str, password: str) -> Any: ...

    async def send_message(self, message: Message) -> Any: ...

    async def quit(self) -> Any: ...

    def close(self) -> None: ...


def _create_ssl_context(endpoint: SMTPEndpoint) -> ssl.SSLContext | None:
    if not (endpoint.use_tls or endpoint.use_ssl):
        return None

    context = ssl.create_default_context()
    if not endpoint.validate_certs:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def create_smtp_client(endpoint: SMTPEndpoint) -> SMTPClient:
    return aiosmtplib.SMTP(
        hostname=endpoint.host,
        port=endpoint.port,
        use_tls=endpoint.use_ssl,  # Implicit TLS
        start_tls=endpoint.use_tls,  # STARTTLS
        tls_context=_create_ssl_context(endpoint),
        timeout=endpoint.timeout,
    )


@dataclass
class PooledConnection:
    client: SMTPClient
    messages_sent: int = 0
    created_at: float = field(default_factory=time.monotonic)


class SMTPConnectionPool:
    """Connection pool for one SMTP endpoint.

    Example:
        pool = SMTPConnectionPool(settings.primary_endpoint, max_connections=5, max_messages=100)
        async with pool.connection() as smtp:
            await smtp.send_message(message)
        await pool.close()
    """

    def __init__(
        self,
        endpoint: SMTPEndpoint,
        max_connections: int = 5,
        max_messages: int = 100,
        client_factory: Callable[[SMTPEndpoint], SMTPClient] | None = None,
    ) -> None:
        if max_connections < 1 or max_messages < 1:
            msg = "max_connections and max_messages must be positive"
            raise ValueError(msg)
        self.endpoint = endpoint
        self.max_connections = max_connections
        self.max_messages = max_messages
        self._client_factory = client_factory or create_smtp_client
        self._semaphore = asyncio.Semaphore(max_connections)
        self._idle: deque[PooledConnection] = deque()
        self._in_use = 0
        self._closed = False

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def idle(self) -> int:
        return len(self._idle)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[SMTPClient]:
        """Check out a connected (and authenticated) client for one send.

        Waits while ``max_connections`` clients are already checked out.

        Raises:
            TransportException: If the pool was closed.
        """
        if self._closed:
            raise TransportException(
                f"SMTP pool for {self.endpoint.name} is closed",
                endpoint=self.endpoint.name,
                error_code="POOL_CLOSED",
            )

        async with self._semaphore:
            conn = await self._checkout()
            self._in_use += 1
            smtp_connections_in_use.labels(endpoint=self.endpoint.name).inc()
            try:
                yield conn.client
            except BaseException:
                self._discard(conn)
                raise
            else:
                conn.messages_sent += 1
                await self._checkin(conn)
            finally:
                self._in_use -= 1
                smtp_connections_in_use.labels(endpoint=self.endpoint.name).dec()

    async def _checkout(self) -> PooledConnection:
        while self._idle:
            conn = self._idle.popleft()
            if conn.client.is_connected:
                return conn
            logger.debug("Dropping stale SMTP connection", extra={"endpoint": self.endpoint.name})

        client = self._client_factory(self.endpoint)
        await client.connect()
        try:
            if self.endpoint.requires_auth:
                await client.login(self.endpoint.username or "", self.endpoint.password or "")
        except BaseException:
            client.close()
            raise

        smtp_connections_opened_total.labels(endpoint=self.endpoint.name).inc()
        logger.debug(
            "Opened SMTP connection",
            extra={"endpoint": self.endpoint.name, "url": self.endpoint.url()},
        )
        return PooledConnection(client=client)

    async def _checkin(self, conn: PooledConnection) -> None:
        if self._closed or conn.messages_sent >= self.max_messages:
            await self._quit(conn)
            return
        self._idle.append(conn)

    async def _quit(self, conn: PooledConnection) -> None:
        try:
            await conn.client.quit()
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.debug(
                "SMTP QUIT failed, closing connection",
                extra={"endpoint": self.endpoint.name, "error": str(e)},
            )
            conn.client.close()

    def _discard(self, conn: PooledConnection) -> None:
        conn.client.close()

    async def close(self) -> None:
        """Close idle connections; checked-out ones are closed on return."""
        self._closed = True
        while self._idle:
            await self._quit(self._idle.popleft())
        logger.info("SMTP pool closed", extra={"endpoint": self.endpoint.name})
