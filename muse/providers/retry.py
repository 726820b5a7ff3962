"""Bounded retry with exponential backoff for non-streaming upstream calls.

Never wrap the streaming generation call: once text has reached a client
there is nothing safe to replay.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from loguru import logger

from muse.errors import ExternalTimeoutError

T = TypeVar("T")

_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504, 529}
_RETRYABLE_PATTERNS = (
    "rate limit",
    "timeout",
    "timed out",
    "connection",
    "server error",
    "overloaded",
    "too many requests",
    "temporarily unavailable",
)


def is_retryable(error: Exception) -> bool:
    """Check if an error is transient and safe to retry."""
    if isinstance(error, ExternalTimeoutError):
        return True

    error_str = str(error).lower()
    if any(pattern in error_str for pattern in _RETRYABLE_PATTERNS):
        return True

    return any(str(code) in error_str for code in _RETRYABLE_STATUS_CODES)


async def with_retry(
    fn: Callable[..., Awaitable[T]],
    *args: object,
    max_retries: int = 3,
    base_delay: float = 1.0,
    **kwargs: object,
) -> T:
    """Call an async function, retrying transient errors with backoff.

    Args:
        fn: Async function to call.
        *args: Positional arguments for fn.
        max_retries: Maximum number of retry attempts.
        base_delay: Base delay in seconds (doubles each retry).
        **kwargs: Keyword arguments for fn.

    Raises:
        The last exception if retries are exhausted or the error is not transient.
    """
    for attempt in range(max_retries + 1):
        try:
            return await fn(*args, **kwargs)
        except Exception as e:
            if attempt >= max_retries or not is_retryable(e):
                raise

            delay = base_delay * (2**attempt)
            logger.info(
                f"Retryable error (attempt {attempt + 1}/{max_retries}), retrying in {delay}s: {e}"
            )
            await asyncio.sleep(delay)

    raise RuntimeError("unreachable")
