"""Tests for the retry executor and rate limiter."""

from __future__ import annotations

import math
from unittest.mock import AsyncMock

import pytest

from etlcore.connectors.models import ErrorHandling
from etlcore.etl.retry import NO_RESULT, RateLimiter, with_retries


class TestWithRetries:
    """Tests for bounded fixed-interval retries."""

    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self, clock) -> None:
        """A successful call should not sleep."""
        operation = AsyncMock(return_value="ok")
        result = await with_retries(operation, ErrorHandling(max_retries=3), sleep=clock.sleep)
        assert result == "ok"
        assert operation.await_count == 1
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_fail_fast_reraises_first_failure(self, clock) -> None:
        """fail_on_error should abort on the first failure."""
        operation = AsyncMock(side_effect=RuntimeError("boom"))
        failures = []

        with pytest.raises(RuntimeError, match="boom"):
            await with_retries(
                operation,
                ErrorHandling(max_retries=5, fail_on_error=True),
                on_attempt_failure=lambda n, e: failures.append((n, str(e))),
                sleep=clock.sleep,
            )

        assert operation.await_count == 1
        assert failures == [(1, "boom")]

    @pytest.mark.asyncio
    async def test_fail_soft_retries_with_fixed_interval(self, clock) -> None:
        """Fail-soft policy makes max_retries + 1 attempts, then gives up."""
        operation = AsyncMock(side_effect=RuntimeError("down"))
        failures = []

        result = await with_retries(
            operation,
            ErrorHandling(max_retries=2, retry_interval=250, fail_on_error=False),
            on_attempt_failure=lambda n, e: failures.append(n),
            sleep=clock.sleep,
        )

        assert result is NO_RESULT
        assert not result
        assert operation.await_count == 3
        assert failures == [1, 2, 3]
        assert clock.sleeps == [0.25, 0.25]

    @pytest.mark.asyncio
    async def test_fail_soft_recovers(self, clock) -> None:
        """A later success should be returned."""
        operation = AsyncMock(side_effect=[RuntimeError("flaky"), "ok"])
        result = await with_retries(
            operation,
            ErrorHandling(max_retries=1, retry_interval=10, fail_on_error=False),
            sleep=clock.sleep,
        )
        assert result == "ok"
        assert clock.sleeps == [0.01]

    @pytest.mark.asyncio
    async def test_retries_until_third_attempt_succeeds(self, clock) -> None:
        """Two failures then a success sleep exactly twice."""
        operation = AsyncMock(side_effect=[RuntimeError("a"), RuntimeError("b"), "ok"])
        failures = []

        result = await with_retries(
            operation,
            ErrorHandling(max_retries=2, retry_interval=200, fail_on_error=False),
            on_attempt_failure=lambda n, e: failures.append(n),
            sleep=clock.sleep,
        )

        assert result == "ok"
        assert operation.await_count == 3
        assert failures == [1, 2]
        assert clock.sleeps == [0.2, 0.2]


class TestRateLimiter:
    """Tests for request pacing."""

    def test_infinite_rate_is_disabled(self, clock) -> None:
        """Infinite requests per second never waits."""
        limiter = RateLimiter(math.inf, sleep=clock.sleep, clock=clock)
        limiter.mark()
        assert not limiter.enabled
        assert limiter.remaining() == 0.0

    @pytest.mark.asyncio
    async def test_waits_remainder_of_interval(self, clock) -> None:
        """Only the unconsumed part of 1/rps is slept."""
        limiter = RateLimiter(2, sleep=clock.sleep, clock=clock)
        limiter.mark()
        clock.advance(0.2)

        waited = await limiter.wait()

        assert waited == pytest.approx(0.3)
        assert clock.sleeps == [pytest.approx(0.3)]

    @pytest.mark.asyncio
    async def test_no_wait_when_interval_elapsed(self, clock) -> None:
        """A slow request consumes the whole interval."""
        limiter = RateLimiter(2, sleep=clock.sleep, clock=clock)
        limiter.mark()
        clock.advance(1.0)
        assert await limiter.wait() == 0.0
        assert clock.sleeps == []
