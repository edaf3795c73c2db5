"""Pub/sub message bus.

The bus supports two modes:
1. Redis PubSub: messages reach every subscribed instance
2. Local-only: messages reach handlers registered in this process

Payloads are JSON objects on the wire. Subscribers receive the decoded
payload; frames that are not valid JSON are logged and skipped.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Awaitable, Callable
import contextlib
import json
import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from notification_service.core.exceptions import PublishException
from notification_service.utils.retry import RetryScheduler

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from redis.asyncio.client import PubSub

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Any], Awaitable[None]]
Unsubscribe = Callable[[], Awaitable[None]]


@runtime_checkable
class MessageBus(Protocol):
    async def publish(self, topic: str, payload: dict[str, Any]) -> int:
        """Publish ``payload`` to ``topic``.

        Returns the number of subscribers that received it.

        Raises:
            PublishException: If the bus rejected the message.
        """
        ...

    async def subscribe(self, topic: str, handler: MessageHandler) -> Unsubscribe:
        """Register ``handler`` for ``topic`` and return an async unsubscribe callable."""
        ...

    async def close(self) -> None: ...


async def _dispatch(handler: MessageHandler, topic: str, payload: Any) -> None:
    try:
        await handler(payload)
    except Exception as e:
        logger.error(
            "Message handler failed",
            extra={"topic": topic, "error": str(e)},
            exc_info=True,
        )


class RedisMessageBus:
    """Message bus over Redis PubSub.

    Each subscription owns a PubSub connection and a listener task, so a
    slow handler on one topic never stalls another. A listener that loses
    its connection resubscribes with exponential backoff until unsubscribed.

    Example:
        bus = RedisMessageBus(redis)
        unsubscribe = await bus.subscribe("notification:status", handle_status)
        await bus.publish("notification:status", {"notificationId": "...", "status": "DELIVERED"})
        await unsubscribe()
    """

    def __init__(self, redis: Redis, *, reconnect_delay: float = 1.0, max_reconnect_delay: float = 30.0) -> None:
        self._redis = redis
        self._reconnect = RetryScheduler(base_delay=reconnect_delay, max_delay=max_reconnect_delay)
        self._subscriptions: dict[int, tuple[PubSub, asyncio.Task[None]]] = {}
        self._next_id = 0

    async def publish(self, topic: str, payload: dict[str, Any]) -> int:
        try:
            data = json.dumps(payload, default=str)
        except (TypeError, ValueError) as e:
            raise PublishException(topic, f"Payload is not JSON serializable: {e}") from e

        try:
            receivers = await self._redis.publish(topic, data)
        except Exception as e:
            raise PublishException(topic, f"Failed to publish to {topic}: {e}") from e

        logger.debug("Published message", extra={"topic": topic, "receivers": receivers})
        return int(receivers)

    async def subscribe(self, topic: str, handler: MessageHandler) -> Unsubscribe:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(topic)

        subscription_id = self._next_id
        self._next_id += 1
        task = asyncio.create_task(self._listen(pubsub, topic, handler))
        self._subscriptions[subscription_id] = (pubsub, task)

        logger.info("Subscribed to topic", extra={"topic": topic})

        async def unsubscribe() -> None:
            entry = self._subscriptions.pop(subscription_id, None)
            if entry is not None:
                await self._teardown(*entry, topic=topic)

        return unsubscribe

    async def _listen(self, pubsub: PubSub, topic: str, handler: MessageHandler) -> None:
        failures = 0
        while True:
            try:
                async for message in pubsub.listen():
                    failures = 0
                    if message["type"] != "message":
                        continue

                    data = message["data"]
                    if isinstance(data, bytes):
                        data = data.decode()
                    try:
                        payload = json.loads(data)
                    except (TypeError, ValueError):
                        logger.warning(
                            "Dropping malformed message",
                            extra={"topic": topic, "data": str(data)[:200]},
                        )
                        continue

                    await _dispatch(handler, topic, payload)
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                delay = self._reconnect.next_delay(min(failures, 16))
                failures += 1
                logger.error(
                    "PubSub listener error, resubscribing",
                    extra={"topic": topic, "error": str(e), "failures": failures, "delay": delay},
                )
                await asyncio.sleep(delay)
                try:
                    await pubsub.subscribe(topic)
                except Exception as resubscribe_error:
                    # listen() fails again on a dead connection and backs off further
                    logger.warning(
                        "Resubscribe failed",
                        extra={"topic": topic, "error": str(resubscribe_error)},
                    )

    async def _teardown(self, pubsub: PubSub, task: asyncio.Task[None], *, topic: str) -> None:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        try:
            await pubsub.unsubscribe(topic)
        finally:
            await pubsub.aclose()
        logger.info("Unsubscribed from topic", extra={"topic": topic})

    async def close(self) -> None:
        subscriptions = list(self._subscriptions.values())
        self._subscriptions.clear()
        for pubsub, task in subscriptions:
            channels = list(pubsub.channels)
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            await pubsub.aclose()
            logger.debug("Closed subscription", extra={"topics": [str(c) for c in channels]})


class InMemoryMessageBus:
    """Local-only message bus.

    ``publish`` awaits every handler registered for the topic before
    returning. Payloads go through a JSON round trip so handlers see exactly
    what a Redis subscriber would.
    """

    def __init__(self) -> None:
        self._handlers: defaultdict[str, list[MessageHandler]] = defaultdict(list)
        self.published: list[tuple[str, dict[str, Any]]] = []

    async def publish(self, topic: str, payload: dict[str, Any]) -> int:
        try:
            data = json.loads(json.dumps(payload, default=str))
        except (TypeError, ValueError) as e:
            raise PublishException(topic, f"Payload is not JSON serializable: {e}") from e

        self.published.append((topic, data))
        handlers = list(self._handlers.get(topic, ()))
        for handler in handlers:
            await _dispatch(handler, topic, data)
        return len(handlers)

    async def subscribe(self, topic: str, handler: MessageHandler) -> Unsubscribe:
        self._handlers[topic].append(handler)

        async def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._handlers[topic].remove(handler)

        return unsubscribe

    async def deliver_raw(self, topic: str, payload: Any) -> None:
        """Hand an arbitrary payload to the topic's handlers, bypassing encoding."""
        for handler in list(self._handlers.get(topic, ())):
            await _dispatch(handler, topic, payload)

    async def close(self) -> None:
        self._handlers.clear()
