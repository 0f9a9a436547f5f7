"""
Lightweight async retry utility with growing backoff.
"""

from __future__ import annotations

import asyncio
import functools
from typing import Any, Awaitable, Callable, Tuple, TypeVar

from infra.logger import get_logger

T = TypeVar("T")


async def _sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


def retry(
    max_retries: int = 3,
    backoff: float = 1.0,
    retry_on: Tuple[type[BaseException], ...] = (Exception,),
    give_up_on: Tuple[type[BaseException], ...] = (),
):
    """
    Decorator to retry a coroutine function, sleeping between attempts.

    The n-th retry waits ``backoff * n`` seconds (1s, 2s, 3s with the defaults).
    Attempts run one after another, never concurrently.

    Args:
        max_retries: Number of retry attempts before raising.
        backoff: Base delay in seconds.
        retry_on: Exception types that trigger a retry.
        give_up_on: Exception types raised immediately even if listed in retry_on.
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        logger = get_logger(f"{func.__module__}.{func.__name__}")

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except give_up_on:
                    raise
                except retry_on as exc:  # type: ignore[misc]
                    attempt += 1
                    if attempt > max_retries:
                        logger.error("Retry exhausted after %s attempts: %s", attempt, exc)
                        raise
                    logger.warning("Retrying attempt %s/%s after error: %s", attempt, max_retries, exc)
                    await _sleep(backoff * attempt)

        return wrapper

    return decorator
