"""Structured fan-out for concurrent branches.

TaskGroup runs several coroutines as a unit. The first failure cancels every
sibling and propagates as-is (not wrapped in an ExceptionGroup), which is
what all-or-nothing patterns need: the caller sees the one error that
decided the outcome.

Example:
    >>> async with TaskGroup() as tg:
    ...     security = tg.spawn(review("security"), name="security")
    ...     style = tg.spawn(review("style"), name="style")
    ...     async for handle in tg.as_completed():
    ...         print(handle.name, handle.result())
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Coroutine
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from types import TracebackType

T = TypeVar("T")


class TaskState(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class TaskHandle(Generic[T]):
    """Handle to a spawned task with state access.

    Attributes:
        name: Task name (branch or plan-task id)
    """

    name: str | None = None
    _task: asyncio.Task[T] | None = field(default=None, repr=False)

    @property
    def state(self) -> TaskState:
        if self._task is None:
            return TaskState.PENDING
        if self._task.cancelled():
            return TaskState.CANCELLED
        if self._task.done():
            return TaskState.FAILED if self._task.exception() else TaskState.COMPLETED
        return TaskState.RUNNING

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def result(self) -> T:
        """Task result; re-raises the task's exception if it failed."""
        if self._task is None:
            raise RuntimeError("Task not started")
        return self._task.result()

    async def wait(self) -> T:
        if self._task is None:
            raise RuntimeError("Task not started")
        return await self._task


class TaskGroup:
    """Task group where the first failure cancels siblings and propagates."""

    __slots__ = ("_tasks", "_handles", "_started", "_exiting")

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[object]] = set()
        self._handles: list[TaskHandle[object]] = []
        self._started = False
        self._exiting = False

    def spawn(self, coro: Coroutine[object, object, T], *, name: str | None = None) -> TaskHandle[T]:
        """Start `coro` as a member of this group.

        Raises:
            RuntimeError: If called outside the context manager or while exiting
        """
        if not self._started:
            coro.close()
            raise RuntimeError("TaskGroup must be used as context manager")
        if self._exiting:
            coro.close()
            raise RuntimeError("Cannot spawn tasks while exiting TaskGroup")

        task = asyncio.create_task(coro, name=name)
        handle: TaskHandle[T] = TaskHandle(name=name, _task=task)
        self._tasks.add(task)  # type: ignore[arg-type]
        self._handles.append(handle)  # type: ignore[arg-type]
        task.add_done_callback(self._tasks.discard)  # type: ignore[arg-type]
        return handle

    def cancel_all(self) -> None:
        for task in self._tasks:
            task.cancel()

    async def as_completed(self) -> AsyncIterator[TaskHandle[object]]:
        """Yield handles in completion order.

        A failed member cancels the rest and its exception is raised from
        the iterator. Externally cancelled members are skipped.
        """
        order = {h._task: i for i, h in enumerate(self._handles)}
        by_task = {h._task: h for h in self._handles}
        pending = {t for t in by_task if t is not None}
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in sorted(done, key=order.__getitem__):
                if task.cancelled():
                    continue
                if (exc := task.exception()) is not None:
                    self.cancel_all()
                    raise exc
                yield by_task[task]

    async def __aenter__(self) -> TaskGroup:
        self._started = True
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool:
        self._exiting = True
        if exc_val is not None:
            self.cancel_all()

        failures: list[BaseException] = []
        while self._tasks:
            done, _ = await asyncio.wait(self._tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                if task.cancelled():
                    continue
                if (exc := task.exception()) is not None:
                    if not failures:
                        self.cancel_all()
                    failures.append(exc)

        # A failure already raised from as_completed() is exc_val itself
        if exc_val is None and failures:
            raise failures[0]
        return False


async def checkpoint() -> None:
    """Cooperative cancellation checkpoint."""
    await asyncio.sleep(0)
