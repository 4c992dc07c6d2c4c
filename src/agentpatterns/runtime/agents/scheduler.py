"""Plan validation and dependency-ordered concurrent execution.

A deliberately small topological scheduler, not a DAG engine: every task is
spawned up front in topological order, awaits its prerequisites' results,
then takes a slot from a semaphore bounding how many workers run at once.
The first failure cancels everything still pending.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from graphlib import CycleError, TopologicalSorter
from typing import Any

from agentpatterns.foundation.errors import JsonDict, PlanValidationError
from agentpatterns.runtime.concurrency import TaskGroup, TaskHandle


@dataclass(frozen=True, slots=True)
class PlanTask:
    id: str
    description: str
    depends_on: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PlanTask:
        return cls(str(data["id"]), str(data["description"]), tuple(str(d) for d in data.get("depends_on") or ()))


@dataclass(frozen=True, slots=True)
class TaskOutcome:
    task: PlanTask
    result: Any


Worker = Callable[[PlanTask, dict[str, Any]], Awaitable[Any]]


def validate_plan(tasks: Sequence[PlanTask], *, max_tasks: int | None = None) -> list[PlanTask]:
    """Check a plan and return its tasks in a valid execution order.

    Raises:
        PlanValidationError: empty plan, too many tasks, duplicate ids,
            unknown or self dependencies, or a dependency cycle
    """
    if not tasks:
        raise PlanValidationError("Plan has no tasks")
    if max_tasks is not None and len(tasks) > max_tasks:
        raise PlanValidationError(f"Plan has {len(tasks)} tasks; at most {max_tasks} allowed",
                                  details={"tasks": len(tasks), "max_tasks": max_tasks})
    by_id: dict[str, PlanTask] = {}
    for task in tasks:
        if task.id in by_id:
            raise PlanValidationError(f"Duplicate task id '{task.id}'", details={"task": task.id})
        by_id[task.id] = task
    for task in tasks:
        if task.id in task.depends_on:
            raise PlanValidationError(f"Task '{task.id}' depends on itself", details={"task": task.id})
        if unknown := [d for d in task.depends_on if d not in by_id]:
            raise PlanValidationError(f"Task '{task.id}' depends on unknown task(s): {', '.join(unknown)}",
                                      details={"task": task.id, "unknown": unknown})
    sorter = TopologicalSorter({t.id: t.depends_on for t in tasks})
    try:
        order = list(sorter.static_order())
    except CycleError as e:
        cycle = list(e.args[1]) if len(e.args) > 1 else []
        raise PlanValidationError(f"Dependency cycle: {' -> '.join(cycle)}", details={"cycle": cycle}) from e
    return [by_id[i] for i in order]


class TaskScheduler:
    """Runs validated plan tasks as their prerequisites complete.

    Example:
        >>> scheduler = TaskScheduler(worker, max_concurrency=4)
        >>> async for outcome in scheduler.run(plan):
        ...     print(outcome.task.id, outcome.result)
    """

    __slots__ = ("_worker", "max_concurrency", "max_tasks")

    def __init__(self, worker: Worker, *, max_concurrency: int = 4, max_tasks: int | None = None) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._worker = worker
        self.max_concurrency = max_concurrency
        self.max_tasks = max_tasks

    async def run(self, tasks: Sequence[PlanTask]) -> AsyncIterator[TaskOutcome]:
        """Yield outcomes in completion order.

        Each worker receives the results of its direct prerequisites keyed by
        task id.
        """
        order = validate_plan(tasks, max_tasks=self.max_tasks)
        slots = asyncio.Semaphore(self.max_concurrency)
        handles: dict[str, TaskHandle[Any]] = {}

        async def execute(task: PlanTask, prerequisites: list[TaskHandle[Any]]) -> Any:
            inputs = {h.name: await h.wait() for h in prerequisites}
            async with slots:
                return await self._worker(task, inputs)  # type: ignore[arg-type]

        by_id = {t.id: t for t in order}
        async with TaskGroup() as tg:
            for task in order:
                handles[task.id] = tg.spawn(execute(task, [handles[d] for d in task.depends_on]), name=task.id)
            async for handle in tg.as_completed():
                assert handle.name is not None
                yield TaskOutcome(by_id[handle.name], handle.result())


def plan_summary(tasks: Sequence[PlanTask]) -> list[JsonDict]:
    return [{"id": t.id, "description": t.description, "depends_on": list(t.depends_on)} for t in tasks]
