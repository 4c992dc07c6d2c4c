"""Per-execution cancellation signal.

The caller (e.g. a disconnecting HTTP client) fires the signal; every model
call and tool dispatch of the execution is raced against it via `guard()`,
so in-flight work is abandoned promptly instead of at the next checkpoint.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable
from dataclasses import dataclass, field
from typing import TypeVar

from agentpatterns.foundation.errors import CancellationRequested

T = TypeVar("T")


@dataclass(slots=True)
class CancelSignal:
    """One-shot cancellation flag with async waiting.

    Example:
        >>> signal = CancelSignal()
        >>> result = await signal.guard(invoker.invoke(request))
        >>> # elsewhere: signal.cancel("client disconnected")
    """

    reason: str | None = None
    _event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancellationRequested(self.reason or "cancelled")

    async def wait(self) -> None:
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await `awaitable` unless the signal fires first.

        Raises:
            CancellationRequested: signal fired; the awaitable was cancelled
        """
        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            self.raise_if_cancelled()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not work.done():
                work.cancel()
            waiter.cancel()
        if work.done() and not work.cancelled():
            return work.result()
        await asyncio.gather(work, return_exceptions=True)
        raise CancellationRequested(self.reason or "cancelled")

    async def guard_stream(self, stream: AsyncIterator[T]) -> AsyncIterator[T]:
        """Re-yield `stream`, racing each item against the signal."""
        async def _next() -> T:
            return await anext(stream)

        while True:
            try:
                item = await self.guard(_next())
            except StopAsyncIteration:
                return
            yield item
