"""Retry helper for vendor API calls."""

import asyncio
from typing import Any, Callable, Coroutine, Optional, TypeVar

from . import log

T = TypeVar("T")


async def with_retries(
    fn: Callable[[], Coroutine[Any, Any, T]],
    attempts: int = 2,
    backoff_s: float = 4.0,
    name: str = "operation",
    retry_on: tuple[type[BaseException], ...] = (Exception,),
) -> tuple[bool, Optional[T], Optional[Exception]]:
    """
    Execute async function, retrying transient failures.

    Exceptions not listed in retry_on are not retried and propagate
    immediately. Backoff doubles after each failed attempt.

    Args:
        fn: Async function to call
        attempts: Max number of attempts
        backoff_s: Seconds to wait before the first retry
        name: Name for logging
        retry_on: Exception types considered transient

    Returns:
        (success, result, last_exception)
    """
    last_exception: Optional[Exception] = None
    delay = backoff_s

    for attempt in range(1, attempts + 1):
        try:
            result = await fn()
        except retry_on as e:
            last_exception = e
            log.info(f"{name}: attempt {attempt}/{attempts} failed: {e}")
            if attempt < attempts:
                log.debug(f"{name}: retrying in {delay}s...")
                await asyncio.sleep(delay)
                delay *= 2
            continue

        if attempt > 1:
            log.info(f"{name}: succeeded on attempt {attempt}/{attempts}")
        return (True, result, None)

    return (False, None, last_exception)
