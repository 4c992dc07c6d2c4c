"""Async stream helpers."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Callable, TypeVar

T = TypeVar("T")


async def timeout_stream(
    stream: AsyncIterator[T],
    timeout: float,
    *,
    on_timeout: Callable[[], BaseException] | None = None,
) -> AsyncIterator[T]:
    """Bound the wait for each item of `stream`.

    Args:
        stream: Source async iterator
        timeout: Max seconds to wait for each item
        on_timeout: Builds the exception raised on timeout (TimeoutError if None)

    Example:
        >>> async for delta in timeout_stream(deltas, timeout=30.0):
        ...     buffer += delta  # each delta must arrive within 30s
    """
    while True:
        try:
            item = await asyncio.wait_for(anext(stream), timeout=timeout)
        except StopAsyncIteration:
            break
        except TimeoutError:
            if on_timeout is None:
                raise
            raise on_timeout() from None
        yield item
