"""
Retry Utilities.

Exponential backoff for calls to the processing service. Only transport
level failures (connection refused, timeouts) are retried; an error response
from the service is a real answer and is surfaced immediately.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    exponential_base: float = 2.0
    jitter: bool = True  # Add randomness to delay

    # Which exceptions to retry on
    retryable_exceptions: tuple[type[BaseException], ...] = (
        ConnectionError,
        TimeoutError,
        httpx.TransportError,
    )

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for a given attempt (0-indexed)."""
        delay = self.base_delay * (self.exponential_base ** attempt)
        delay = min(delay, self.max_delay)

        if self.jitter:
            # Add +/- 25% jitter
            jitter_range = delay * 0.25
            delay = delay + random.uniform(-jitter_range, jitter_range)

        return max(0.0, delay)


DEFAULT_RETRY = RetryConfig()


async def retry_async(
    func: Callable[..., Any],
    *args: Any,
    config: RetryConfig | None = None,
    on_retry: Callable[[int, BaseException], None] | None = None,
    **kwargs: Any,
) -> Any:
    """
    Execute an async function with retry logic.

    Args:
        func: The async function to call
        *args: Positional arguments to pass to func
        config: Retry configuration (uses defaults if not provided)
        on_retry: Optional callback called before each retry (attempt, exception)
        **kwargs: Keyword arguments to pass to func

    Returns:
        The result of func

    Raises:
        The last exception if all attempts fail; non-retryable exceptions
        immediately
    """
    config = config or DEFAULT_RETRY
    attempts = max(1, config.max_attempts)

    for attempt in range(attempts):
        try:
            return await func(*args, **kwargs)
        except config.retryable_exceptions as e:
            if attempt >= attempts - 1:
                raise

            delay = config.get_delay(attempt)
            if on_retry:
                on_retry(attempt + 1, e)
            logger.warning(
                f"Retry {attempt + 1}/{attempts} after {delay:.1f}s: {type(e).__name__}: {e}"
            )
            await asyncio.sleep(delay)

    raise RuntimeError("Retry logic error")


def with_retry(config: RetryConfig | None = None):
    """
    Decorator to add retry logic to an async function.

    Usage:
        @with_retry(RetryConfig(max_attempts=5))
        async def call_api():
            ...
    """
    config = config or DEFAULT_RETRY

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await retry_async(func, *args, config=config, **kwargs)
        return wrapper
    return decorator
