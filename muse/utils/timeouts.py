"""Bounded waits for external calls."""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from loguru import logger

from muse.errors import ExternalTimeoutError

T = TypeVar("T")

_MISSING = object()


async def bounded_wait(
    awaitable: Awaitable[T],
    timeout: float | None,
    operation: str = "external call",
    default: object = _MISSING,
) -> T:
    """Await an external call for at most ``timeout`` seconds.

    Args:
        awaitable: The coroutine or future to wait on.
        timeout: Seconds to wait. ``None`` waits indefinitely.
        operation: Name used in logs and in the raised error.
        default: If given, returned on timeout instead of raising.

    Returns:
        The awaited result, or ``default`` on timeout.

    Raises:
        ExternalTimeoutError: On timeout when no ``default`` was given.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        if default is not _MISSING:
            logger.warning(f"{operation} timed out after {timeout}s, using fallback")
            return default  # type: ignore[return-value]
        raise ExternalTimeoutError(operation, timeout or 0.0) from None
