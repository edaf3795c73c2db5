"""Unit tests for the backoff scheduler and the retry decorator."""
from __future__ import annotations

import pytest

from notification_service.core.settings.notifications import NotificationSettings
from notification_service.utils.retry import RetryError, RetryScheduler, retry


@pytest.mark.unit
class TestRetryScheduler:
    """Delay computation for attempt numbers."""

    def test_delays_grow_exponentially(self):
        scheduler = RetryScheduler(max_attempts=4, base_delay=1.0)

        assert scheduler.next_delay(0) == 1.0
        assert scheduler.next_delay(1) == 2.0
        assert scheduler.next_delay(2) == 4.0

    def test_delay_is_capped(self):
        scheduler = RetryScheduler(base_delay=1.0, max_delay=5.0)

        assert scheduler.next_delay(10) == 5.0

    def test_delays_between_attempts(self):
        """Three attempts sleep twice: base, then twice base."""
        scheduler = RetryScheduler(max_attempts=3, base_delay=0.5)

        assert list(scheduler.delays()) == [0.5, 1.0]

    def test_single_attempt_never_sleeps(self):
        assert list(RetryScheduler(max_attempts=1).delays()) == []

    def test_jitter_stays_in_range(self):
        scheduler = RetryScheduler(base_delay=2.0, jitter=True, jitter_range=(0.5, 1.5))

        for _ in range(50):
            assert 1.0 <= scheduler.next_delay(0) <= 3.0

    @pytest.mark.parametrize(
        ("kwargs", "message"),
        [
            ({"max_attempts": 0}, "max_attempts"),
            ({"base_delay": -1}, "negative"),
            ({"max_delay": -1}, "negative"),
        ],
    )
    def test_rejects_invalid_policy(self, kwargs, message):
        with pytest.raises(ValueError, match=message):
            RetryScheduler(**kwargs)

    def test_from_settings(self):
        settings = NotificationSettings(max_attempts=5, retry_base_delay=0.25, retry_max_delay=2.0)

        scheduler = RetryScheduler.from_settings(settings)

        assert scheduler.max_attempts == 5
        assert list(scheduler.delays()) == [0.25, 0.5, 1.0, 2.0]

    def test_should_retry_by_exception_type(self):
        scheduler = RetryScheduler(exceptions=(ConnectionError,))

        assert scheduler.should_retry(ConnectionError("down"))
        assert not scheduler.should_retry(ValueError("bad"))

    def test_retry_if_overrides_exception_types(self):
        scheduler = RetryScheduler(retry_if=lambda e: "transient" in str(e))

        assert scheduler.should_retry(ValueError("transient glitch"))
        assert not scheduler.should_retry(ConnectionError("permanent"))


@pytest.mark.unit
class TestRetryDecorator:
    """Retry decorator over async callables."""

    @pytest.mark.asyncio
    async def test_succeeds_first_attempt(self):
        call_count = 0

        @retry(max_attempts=3)
        async def successful():
            nonlocal call_count
            call_count += 1
            return "success"

        assert await successful() == "success"
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        call_count = 0

        @retry(max_attempts=3, initial_delay=0.01, jitter=False)
        async def eventually_successful():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise ConnectionError("Not yet")
            return "success"

        assert await eventually_successful() == "success"
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_raises_retry_error_when_exhausted(self):
        call_count = 0

        @retry(max_attempts=3, initial_delay=0.01, jitter=False)
        async def always_fails():
            nonlocal call_count
            call_count += 1
            raise ConnectionError("Always fails")

        with pytest.raises(RetryError) as exc_info:
            await always_fails()

        assert call_count == 3
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_exception, ConnectionError)
        assert "always_fails gave up after 3 attempts" in str(exc_info.value)
        assert exc_info.value.statistics.errors == ["ConnectionError", "ConnectionError"]
        assert exc_info.value.statistics.delays == [0.01, 0.02]

    @pytest.mark.asyncio
    async def test_non_retryable_exception_propagates(self):
        call_count = 0

        @retry(max_attempts=3, initial_delay=0.01, exceptions=(ConnectionError,))
        async def raises_type_error():
            nonlocal call_count
            call_count += 1
            raise TypeError("Not retryable")

        with pytest.raises(TypeError):
            await raises_type_error()

        assert call_count == 1

    @pytest.mark.asyncio
    async def test_on_retry_callback(self):
        seen: list[int] = []

        @retry(max_attempts=3, initial_delay=0.0, jitter=False, on_retry=lambda _e, n: seen.append(n))
        async def flaky():
            if len(seen) < 2:
                raise ConnectionError("flaky")
            return "ok"

        assert await flaky() == "ok"
        assert seen == [1, 2]

    @pytest.mark.asyncio
    async def test_uses_given_scheduler(self):
        call_count = 0
        scheduler = RetryScheduler(max_attempts=2, base_delay=0.0, exceptions=(ConnectionError,))

        @retry(scheduler=scheduler)
        async def always_fails():
            nonlocal call_count
            call_count += 1
            raise ConnectionError("down")

        with pytest.raises(RetryError):
            await always_fails()

        assert call_count == 2
