"""
Async retry utility for transient infrastructure failures.

Retry policy:
- Exponential backoff with jitter
- Only transient infra errors are retried (connection resets, timeouts)
- Domain errors (rejected binds, invalid pages) are NEVER retried
- Original exception is raised on final failure
- No logging inside utility (caller handles logging)
"""

import asyncio
import inspect
import random
from typing import Any, Callable, Tuple, Type

import asyncpg
import redis.exceptions


DEFAULT_RETRIES = 2
DEFAULT_BASE_DELAY = 0.5
DEFAULT_MAX_DELAY = 5.0


TRANSIENT_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    asyncpg.PostgresConnectionError,
    asyncpg.CannotConnectNowError,
    asyncio.TimeoutError,
    redis.exceptions.ConnectionError,
    redis.exceptions.TimeoutError,
    ConnectionError,
    OSError,
)


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Exponential delay for `attempt` (0-based) with +-20% jitter, never negative"""
    delay = min(base_delay * (2 ** attempt), max_delay)
    jitter = delay * 0.2 * (random.random() * 2 - 1)
    return max(0.0, delay + jitter)


async def retry_async(
    fn: Callable[[], Any],
    *,
    retries: int = DEFAULT_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    retry_on: Tuple[Type[Exception], ...] = TRANSIENT_EXCEPTIONS,
) -> Any:
    """
    Call `fn` and await its result, retrying transient failures.

    Args:
        fn: Callable returning an awaitable (or a plain value)
        retries: Retry attempts after the first call (total = retries + 1)
        base_delay: Base delay in seconds for exponential backoff
        max_delay: Maximum delay in seconds
        retry_on: Exception types considered transient

    Raises:
        The last exception once retries are exhausted; non-retryable
        exceptions immediately
    """
    for attempt in range(retries + 1):
        try:
            result = fn()
            if inspect.isawaitable(result):
                result = await result
            return result
        except retry_on:
            if attempt >= retries:
                raise
            await asyncio.sleep(backoff_delay(attempt, base_delay, max_delay))

    raise RuntimeError("retry_async: unexpected end of retry loop")
