"""Redis client factory.

One client (and connection pool) is shared by every Redis consumer in the
process: the rate limiter counter store, the message bus and the
preferences cache.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, cast

from redis.asyncio import ConnectionPool, Redis

from notification_service.core.settings import get_redis_settings

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from notification_service.core.settings.redis import RedisSettings

logger = logging.getLogger(__name__)


def create_redis_client(settings: RedisSettings | None = None) -> Redis:
    """Build a pooled Redis client. No connection is opened until first use."""
    settings = settings or get_redis_settings()

    logger.info(
        "Creating Redis client",
        extra={
            "max_connections": settings.max_connections,
            "socket_timeout": settings.socket_timeout,
        },
    )

    kwargs: dict[str, Any] = {
        "max_connections": settings.max_connections,
        "socket_timeout": settings.socket_timeout,
        "socket_connect_timeout": settings.socket_connect_timeout,
        "decode_responses": True,
    }
    if settings.password is not None:
        kwargs["password"] = settings.password.get_secret_value()

    pool = ConnectionPool.from_url(settings.url, **kwargs)
    return Redis(connection_pool=pool)


async def ping(client: Redis) -> bool:
    """Return True when Redis answers PING."""
    try:
        return bool(await cast("Awaitable[bool]", client.ping()))
    except Exception as e:
        logger.warning("Redis health check failed", extra={"error": str(e)})
        return False
