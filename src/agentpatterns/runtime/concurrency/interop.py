"""Sync/async interoperability.

Tool handlers may be plain functions; `to_thread` runs them on a shared
pool with the caller's contextvars so log scopes survive the hop.
"""

from __future__ import annotations

import asyncio
import contextvars
import functools
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, TypeVar

T = TypeVar("T")

_default_executor: ThreadPoolExecutor | None = None
_executor_lock = threading.Lock()


def _get_default_executor() -> ThreadPoolExecutor:
    global _default_executor
    if _default_executor is None:
        with _executor_lock:
            if _default_executor is None:
                _default_executor = ThreadPoolExecutor(thread_name_prefix="agentpatterns-tool-")
    return _default_executor


async def to_thread(func: Callable[..., T], *args: object, **kwargs: object) -> T:
    """Run sync function in the shared thread pool."""
    loop = asyncio.get_running_loop()
    ctx = contextvars.copy_context()
    if kwargs:
        func = functools.partial(func, **kwargs)
    return await loop.run_in_executor(_get_default_executor(), functools.partial(ctx.run, func, *args))
