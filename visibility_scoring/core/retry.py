"""Exponential backoff with jitter for transient failures.

  delay = min(base * 2^attempt + jitter, max_delay)
  jitter = random(0, base * 0.5)

Only errors classified by is_transient() are retried; everything else
propagates on the first occurrence.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from visibility_scoring.core.errors import is_transient

logger = logging.getLogger(__name__)

T = TypeVar("T")


def calculate_backoff(attempt: int, base_delay: float = 1.0, max_delay: float = 30.0) -> float:
    """Delay before retry number ``attempt`` (0-based)."""
    exponential = base_delay * (2**attempt)
    jitter = random.uniform(0, base_delay * 0.5)
    return min(exponential + jitter, max_delay)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    should_retry: Callable[[BaseException], bool] = is_transient,
    description: str = "operation",
) -> T:
    """Run ``operation`` retrying transient failures up to ``max_attempts`` times."""
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            attempt += 1
            if attempt >= max_attempts or not should_retry(e):
                raise
            delay = calculate_backoff(attempt - 1, base_delay, max_delay)
            logger.warning(
                "%s failed (attempt %d/%d): %s, retrying in %.1fs",
                description,
                attempt,
                max_attempts,
                e,
                delay,
            )
            await asyncio.sleep(delay)


def transient_retry(method):
    """Decorator for store methods: retry with the instance's retry policy.

    The instance must expose ``retry_attempts`` and ``retry_base_delay``.
    """

    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        return await retry_async(
            lambda: method(self, *args, **kwargs),
            max_attempts=self.retry_attempts,
            base_delay=self.retry_base_delay,
            description=f"{type(self).__name__}.{method.__name__}",
        )

    return wrapper
