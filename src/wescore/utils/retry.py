"""
Exponential backoff for transport-level failures.

Only idempotent reads go through here. Signing and broadcast calls must never
be retried, since a retry could sign a stale digest or double-submit.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx
from loguru import logger

T = TypeVar("T")


def is_retryable_error(error: BaseException) -> bool:
    """Network failures, HTTP 5xx and 429 are retryable."""
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return status == 429 or status >= 500
    return isinstance(error, httpx.TransportError)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 10.0,
    multiplier: float = 2.0,
    retryable: Callable[[BaseException], bool] = is_retryable_error,
    on_retry: Callable[[int, BaseException, float], None] | None = None,
) -> T:
    """
    Await operation, retrying retryable errors with exponential backoff.

    The delay starts at initial_delay and is multiplied after each attempt,
    capped at max_delay. Non-retryable errors propagate immediately.
    """
    delay = initial_delay
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= max_retries or not retryable(e):
                raise
            attempt += 1
            logger.warning(f"Attempt {attempt}/{max_retries} failed: {e}, retrying in {delay:.1f}s")
            if on_retry is not None:
                on_retry(attempt, e, delay)
            await asyncio.sleep(delay)
            delay = min(delay * multiplier, max_delay)
