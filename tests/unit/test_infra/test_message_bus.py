"""Tests for the pub/sub message bus implementations."""
from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from notification_service.core.exceptions import PublishException
from notification_service.infra.messaging import InMemoryMessageBus, MessageBus, RedisMessageBus


@pytest.mark.unit
class TestInMemoryMessageBus:
    def test_satisfies_protocol(self):
        assert isinstance(InMemoryMessageBus(), MessageBus)

    @pytest.mark.asyncio
    async def test_delivers_to_subscribers(self):
        bus = InMemoryMessageBus()
        received: list[dict] = []

        async def handler(payload):
            received.append(payload)

        await bus.subscribe("topic", handler)

        assert await bus.publish("topic", {"a": 1}) == 1
        assert await bus.publish("other", {"a": 2}) == 0
        assert received == [{"a": 1}]
        assert bus.published == [("topic", {"a": 1}), ("other", {"a": 2})]

    @pytest.mark.asyncio
    async def test_payload_goes_through_json(self):
        bus = InMemoryMessageBus()
        received: list[dict] = []

        async def handler(payload):
            received.append(payload)

        await bus.subscribe("topic", handler)
        await bus.publish("topic", {"ids": ("x", "y")})

        assert received == [{"ids": ["x", "y"]}]

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        bus = InMemoryMessageBus()
        handler = AsyncMock()
        unsubscribe = await bus.subscribe("topic", handler)

        await unsubscribe()
        await unsubscribe()

        assert await bus.publish("topic", {}) == 0
        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_break_publish(self):
        bus = InMemoryMessageBus()
        failing = AsyncMock(side_effect=RuntimeError("boom"))
        healthy = AsyncMock()
        await bus.subscribe("topic", failing)
        await bus.subscribe("topic", healthy)

        assert await bus.publish("topic", {"a": 1}) == 2
        healthy.assert_awaited_once_with({"a": 1})

    @pytest.mark.asyncio
    async def test_unserializable_payload_raises_publish_exception(self):
        bus = InMemoryMessageBus()
        payload: dict = {}
        payload["self"] = payload

        with pytest.raises(PublishException) as exc_info:
            await bus.publish("topic", payload)

        assert exc_info.value.topic == "topic"


class FakePubSub:
    """Feeds queued frames to ``listen()`` until cancelled."""

    def __init__(self, broken_listens: int = 0) -> None:
        self.frames: asyncio.Queue[dict] = asyncio.Queue()
        self.channels: dict[str, None] = {}
        self.closed = False
        self.subscribe_calls = 0
        self.broken_listens = broken_listens

    async def subscribe(self, topic: str) -> None:
        self.subscribe_calls += 1
        self.channels[topic] = None
        await self.frames.put({"type": "subscribe", "data": 1})

    async def unsubscribe(self, topic: str) -> None:
        self.channels.pop(topic, None)

    async def listen(self):
        if self.broken_listens:
            self.broken_listens -= 1
            raise RedisConnectionError("Connection closed by server.")
        while True:
            yield await self.frames.get()

    async def aclose(self) -> None:
        self.closed = True


@pytest.mark.unit
class TestRedisMessageBus:
    @pytest.mark.asyncio
    async def test_publish_serializes_json(self):
        redis = MagicMock()
        redis.publish = AsyncMock(return_value=2)
        bus = RedisMessageBus(redis)

        receivers = await bus.publish("notification:status", {"notificationId": "n1", "status": "DELIVERED"})

        assert receivers == 2
        topic, data = redis.publish.await_args.args
        assert topic == "notification:status"
        assert json.loads(data) == {"notificationId": "n1", "status": "DELIVERED"}

    @pytest.mark.asyncio
    async def test_publish_failure_is_wrapped(self):
        redis = MagicMock()
        redis.publish = AsyncMock(side_effect=ConnectionError("down"))
        bus = RedisMessageBus(redis)

        with pytest.raises(PublishException, match="down"):
            await bus.publish("t", {})

    @pytest.mark.asyncio
    async def test_subscriber_receives_decoded_messages_and_skips_malformed(self):
        pubsub = FakePubSub()
        redis = MagicMock()
        redis.pubsub.return_value = pubsub
        bus = RedisMessageBus(redis)
        received: list[dict] = []
        done = asyncio.Event()

        async def handler(payload):
            received.append(payload)
            done.set()

        unsubscribe = await bus.subscribe("t", handler)
        await pubsub.frames.put({"type": "message", "data": b"{not json"})
        await pubsub.frames.put({"type": "message", "data": b'{"ok": true}'})
        await asyncio.wait_for(done.wait(), timeout=1)

        await unsubscribe()

        assert received == [{"ok": True}]
        assert pubsub.closed
        assert pubsub.channels == {}

    @pytest.mark.asyncio
    async def test_close_tears_down_subscriptions(self):
        pubsub = FakePubSub()
        redis = MagicMock()
        redis.pubsub.return_value = pubsub
        bus = RedisMessageBus(redis)
        await bus.subscribe("t", AsyncMock())

        await bus.close()

        assert pubsub.closed

    @pytest.mark.asyncio
    async def test_listener_resubscribes_after_connection_loss(self):
        pubsub = FakePubSub(broken_listens=2)
        redis = MagicMock()
        redis.pubsub.return_value = pubsub
        bus = RedisMessageBus(redis, reconnect_delay=0.0)
        received: list[dict] = []
        done = asyncio.Event()

        async def handler(payload):
            received.append(payload)
            done.set()

        unsubscribe = await bus.subscribe("notification:status", handler)
        await pubsub.frames.put({"type": "message", "data": '{"notificationId": "n1", "status": "FAILED"}'})
        await asyncio.wait_for(done.wait(), timeout=1)

        assert received == [{"notificationId": "n1", "status": "FAILED"}]
        assert pubsub.subscribe_calls == 3
        await unsubscribe()
        assert pubsub.closed
