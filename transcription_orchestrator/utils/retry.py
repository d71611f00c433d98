"""Retry utility with capped exponential backoff.

Transient vs permanent failures are separated through retryable_exceptions.
The decorator can also be applied at call time to bound methods when the
retry budget comes from configuration, e.g.
``retry_with_backoff(max_retries=n)(self._post)``.
"""

import asyncio
import logging
from collections.abc import Callable
from functools import wraps
from typing import Any

logger = logging.getLogger(__name__)


def backoff_delay(attempt: int, base_delay: float, max_delay: float | None) -> float:
    """Return the delay before retry number ``attempt + 1``.

    Delay is base_delay * 2^attempt, capped at max_delay when given.
    """
    delay = base_delay * (2**attempt)
    if max_delay is not None:
        delay = min(delay, max_delay)
    return delay


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float | None = None,
    retryable_exceptions: tuple[type[Exception], ...] | None = None,
) -> Callable:
    """Decorator for retrying async functions with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts after the first call.
        base_delay: Delay in seconds before the first retry.
        max_delay: Upper bound for a single delay. None means uncapped.
        retryable_exceptions: Exception types eligible for retry. If None,
            every Exception is retried. Other exceptions are re-raised
            immediately with ``retry_count`` attached.

    Returns:
        Decorator that wraps an async function with retry logic.
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            last_error: Exception | None = None
            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except Exception as exc:
                    last_error = exc
                    if retryable_exceptions is not None and not isinstance(
                        exc, retryable_exceptions
                    ):
                        exc.retry_count = attempt  # type: ignore[attr-defined]
                        raise
                    if attempt < max_retries:
                        delay = backoff_delay(attempt, base_delay, max_delay)
                        logger.warning(
                            "Retry %d/%d for %s after %.1fs: %s",
                            attempt + 1,
                            max_retries,
                            func.__name__,
                            delay,
                            exc,
                        )
                        await asyncio.sleep(delay)
            last_error.retry_count = max_retries  # type: ignore[union-attr]
            raise last_error  # type: ignore[misc]

        return wrapper

    return decorator
