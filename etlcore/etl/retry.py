"""Retry and pacing primitives for the extract and load stages.

``with_retries`` is the single retry policy used for both downloads and
uploads: bounded attempts, a fixed delay between attempts, and either
fail-fast or fail-soft behaviour. Every exception counts as retryable.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Any, Awaitable, Callable, TypeVar

from ..connectors.models import ErrorHandling

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]


class _NoResult:
    """Sentinel type returned when fail-soft retries are exhausted."""

    _instance: "_NoResult | None" = None

    def __new__(cls) -> "_NoResult":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NO_RESULT"


NO_RESULT = _NoResult()


async def with_retries(
    operation: Callable[[], Awaitable[T]],
    policy: ErrorHandling,
    on_attempt_failure: Callable[[int, Exception], None] | None = None,
    sleep: Sleep = asyncio.sleep,
) -> T | _NoResult:
    """Run an async operation with bounded, fixed-interval retries.

    Args:
        operation: Zero-argument coroutine function to attempt
        policy: max_retries, retry_interval (ms) and fail_on_error
        on_attempt_failure: Called with (attempt number, error) on each failure
        sleep: Awaitable sleep taking seconds, injectable for tests

    Returns:
        The operation result, or NO_RESULT once every attempt failed
        under a fail-soft policy

    Raises:
        Exception: The first failure, when ``fail_on_error`` is set
    """
    attempts = policy.max_retries + 1

    for attempt in range(1, attempts + 1):
        if attempt > 1:
            await sleep(policy.retry_interval / 1000)

        try:
            return await operation()
        except Exception as e:
            if on_attempt_failure:
                on_attempt_failure(attempt, e)

            if policy.fail_on_error:
                raise

            logger.debug(f"Attempt {attempt}/{attempts} failed: {e}")

    return NO_RESULT


class RateLimiter:
    """Token bucket of one: at most one request per ``1/rps`` seconds.

    ``mark()`` records when a request starts; ``wait()`` sleeps whatever is
    left of the minimum interval since that mark.
    """

    def __init__(
        self,
        requests_per_second: float = math.inf,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if math.isinf(requests_per_second) or requests_per_second <= 0:
            self.min_interval = 0.0
        else:
            self.min_interval = 1.0 / requests_per_second
        self._sleep = sleep
        self._clock = clock
        self._last_mark: float | None = None

    @property
    def enabled(self) -> bool:
        return self.min_interval > 0

    def mark(self) -> None:
        self._last_mark = self._clock()

    def remaining(self) -> float:
        """Seconds left before the next request may start."""
        if not self.enabled or self._last_mark is None:
            return 0.0
        return max(0.0, self.min_interval - (self._clock() - self._last_mark))

    async def wait(self) -> float:
        """Sleep out the rest of the interval; returns the seconds waited."""
        delay = self.remaining()
        if delay > 0:
            await self._sleep(delay)
        return delay
