"""Counter stores backing the rate limiters.

The limiter logic only needs a handful of atomic primitives. Redis provides
them across processes via Lua scripts; the in-memory store provides the same
semantics for a single process and for tests.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from notification_service.utils.retry import RetryScheduler, retry

if TYPE_CHECKING:
    from redis.asyncio import Redis

    from notification_service.core.settings.redis import RedisSettings


@runtime_checkable
class CounterStore(Protocol):
    """Atomic counter primitives shared by every limiter instance."""

    async def incr(self, key: str, ttl_seconds: int) -> int:
        """Increment ``key`` and return the new value.

        The expiry is set only when the increment created the key, so a
        window starts on its first hit.
        """
        ...

    async def block(self, key: str, ttl_seconds: int) -> None:
        """Mark ``key`` as blocked for ``ttl_seconds``."""
        ...

    async def blocked_for(self, key: str) -> float:
        """Seconds left on a block, 0 when not blocked."""
        ...

    async def take_token(self, key: str, rate: float, capacity: int) -> float:
        """Take one token from a bucket refilled at ``rate`` per second.

        Returns 0 when a token was taken, otherwise the seconds until one
        becomes available (nothing is taken in that case).
        """
        ...

    async def reset(self, key: str) -> None: ...


_INCR_SCRIPT = """
local current = redis.call('INCR', KEYS[1])
if current == 1 then
    redis.call('EXPIRE', KEYS[1], tonumber(ARGV[1]))
end
return current
"""

_TOKEN_BUCKET_SCRIPT = """
local key = KEYS[1]
local rate = tonumber(ARGV[1])
local capacity = tonumber(ARGV[2])
local now = tonumber(ARGV[3])

local state = redis.call('HMGET', key, 'tokens', 'ts')
local tokens = tonumber(state[1])
local ts = tonumber(state[2])
if tokens == nil then
    tokens = capacity
    ts = now
end

tokens = math.min(capacity, tokens + math.max(0, now - ts) * rate)
local wait = 0
if tokens >= 1 then
    tokens = tokens - 1
else
    wait = (1 - tokens) / rate
end

redis.call('HSET', key, 'tokens', tostring(tokens), 'ts', tostring(now))
redis.call('EXPIRE', key, math.ceil(capacity / rate) + 1)
-- floats are truncated when returned as Lua numbers
return tostring(wait)
"""


class RedisCounterStore:
    """Counter store shared by every service instance through Redis.

    Commands are retried on connection errors and timeouts; anything still
    failing propagates so the limiter can apply its fail-open policy.
    """

    def __init__(
        self,
        redis: Redis,
        *,
        max_retries: int = 3,
        retry_delay: float = 0.1,
    ) -> None:
        self.redis = redis
        self._execute = retry(
            scheduler=RetryScheduler(
                max_attempts=max_retries,
                base_delay=retry_delay,
                max_delay=max(retry_delay * 8, retry_delay),
                exceptions=(RedisConnectionError, RedisTimeoutError),
            ),
        )(self._execute_once)

    @classmethod
    def from_settings(cls, redis: Redis, settings: RedisSettings) -> RedisCounterStore:
        return cls(redis, max_retries=settings.max_retries, retry_delay=settings.retry_delay)

    async def _execute_once(self, command: str, *args: Any, **kwargs: Any) -> Any:
        return await getattr(self.redis, command)(*args, **kwargs)

    async def incr(self, key: str, ttl_seconds: int) -> int:
        result = await self._execute("eval", _INCR_SCRIPT, 1, key, max(ttl_seconds, 1))
        return int(result)

    async def block(self, key: str, ttl_seconds: int) -> None:
        await self._execute("set", f"{key}:blocked", "1", ex=max(ttl_seconds, 1))

    async def blocked_for(self, key: str) -> float:
        ttl_ms = await self._execute("pttl", f"{key}:blocked")
        ttl_ms = int(ttl_ms)
        return ttl_ms / 1000 if ttl_ms > 0 else 0.0

    async def take_token(self, key: str, rate: float, capacity: int) -> float:
        result = await self._execute("eval", _TOKEN_BUCKET_SCRIPT, 1, key, rate, capacity, time.time())
        return float(result)

    async def reset(self, key: str) -> None:
        await self._execute("delete", key, f"{key}:blocked")


class InMemoryCounterStore:
    """Process-local counter store.

    Suitable for a single instance and for tests; ``clock`` is injectable so
    windows and blocks can be advanced without sleeping.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, sweep_interval: float = 60.0) -> None:
        self._clock = clock
        self._lock = asyncio.Lock()
        self._counters: dict[str, tuple[int, float]] = {}
        self._blocks: dict[str, float] = {}
        # key -> (tokens, updated_at, expires_at); a bucket idle until full is dropped
        self._buckets: dict[str, tuple[float, float, float]] = {}
        self._sweep_interval = sweep_interval
        self._next_sweep = clock() + sweep_interval

    def __len__(self) -> int:
        return len(self._counters) + len(self._blocks) + len(self._buckets)

    def _sweep(self, now: float) -> None:
        """Drop expired entries, at most once per ``sweep_interval``. Caller holds the lock."""
        if now < self._next_sweep:
            return
        self._next_sweep = now + self._sweep_interval
        self._counters = {k: v for k, v in self._counters.items() if v[1] > now}
        self._blocks = {k: until for k, until in self._blocks.items() if until > now}
        self._buckets = {k: v for k, v in self._buckets.items() if v[2] > now}

    async def incr(self, key: str, ttl_seconds: int) -> int:
        async with self._lock:
            now = self._clock()
            self._sweep(now)
            count, expires_at = self._counters.get(key, (0, 0.0))
            if expires_at <= now:
                count, expires_at = 0, now + ttl_seconds
            count += 1
            self._counters[key] = (count, expires_at)
            return count

    async def block(self, key: str, ttl_seconds: int) -> None:
        async with self._lock:
            self._blocks[key] = self._clock() + ttl_seconds

    async def blocked_for(self, key: str) -> float:
        async with self._lock:
            until = self._blocks.get(key)
            if until is None:
                return 0.0
            remaining = until - self._clock()
            if remaining <= 0:
                del self._blocks[key]
                return 0.0
            return remaining

    async def take_token(self, key: str, rate: float, capacity: int) -> float:
        async with self._lock:
            now = self._clock()
            self._sweep(now)
            tokens, updated_at, _ = self._buckets.get(key, (float(capacity), now, now))
            tokens = min(float(capacity), tokens + max(0.0, now - updated_at) * rate)
            wait = 0.0
            if tokens >= 1:
                tokens -= 1
            else:
                wait = (1 - tokens) / rate
            self._buckets[key] = (tokens, now, now + (capacity - tokens) / rate)
            return wait

    async def reset(self, key: str) -> None:
        async with self._lock:
            self._counters.pop(key, None)
            self._blocks.pop(key, None)
            self._buckets.pop(key, None)
