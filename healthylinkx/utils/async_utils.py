"""
Asynchronous utility helpers for Healthylinkx.

Provides utilities for:
- Running blocking database driver calls in the default thread pool
- Bounding those calls with a timeout
"""

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_in_executor(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """
    Run a synchronous function in a thread pool executor.

    Allows non-blocking execution of blocking operations within async context.

    Args:
        func: Synchronous function to execute
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Raises:
        Any exceptions raised by func are propagated

    Example:
        rows = await run_in_executor(cursor.execute, "SELECT 1")
    """
    loop = asyncio.get_running_loop()
    partial_func = functools.partial(func, *args, **kwargs)
    return await loop.run_in_executor(None, partial_func)


async def timeout_wrapper(
    coro: Awaitable[T], timeout_seconds: float = 30
) -> T:
    """
    Wrap a coroutine with a timeout.

    Cancels the coroutine if it exceeds the specified timeout. A blocking
    call already running in the executor keeps running in its thread; the
    caller is expected to close the underlying connection.

    Args:
        coro: Coroutine to execute
        timeout_seconds: Timeout in seconds (default: 30)

    Returns:
        Result of coroutine

    Raises:
        asyncio.TimeoutError: If coroutine exceeds timeout
        Any exceptions raised by the coroutine
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.error(
            f"Coroutine exceeded timeout of {timeout_seconds} seconds"
        )
        raise
