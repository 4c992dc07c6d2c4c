"""Orchestrator-worker pattern: plan, run tasks by dependency, summarize."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import orjson

from agentpatterns.foundation.schema import array_of, field, object_of, schema, string
from agentpatterns.models import GenerationRequest, ModelProfile, build_prompt
from agentpatterns.runtime.execution import PatternExecution

from .base import Capabilities
from .scheduler import PlanTask, TaskScheduler, plan_summary, validate_plan

PLAN_TASK = schema(
    "plan_task",
    field("id", string()),
    field("description", string()),
    field("depends_on", array_of(string()), required=False, description="Ids of prerequisite tasks"),
)

PLAN = schema(
    "plan",
    field("goal", string()),
    field("tasks", array_of(PLAN_TASK)),
)

TASK_RESULT = schema(
    "task_result",
    field("output", string()),
    field("notes", string(), required=False),
)

SUMMARY = schema(
    "orchestration_summary",
    field("summary", string()),
    field("key_findings", array_of(string()), required=False),
)


class OrchestratorStrategy:
    """planning call -> validated plan -> dependency-ordered workers -> streamed summary.

    Snapshots: ``{goal, plan}``, then ``results`` grows as tasks finish,
    then the summary streams in.
    """

    name = "orchestrator"
    result_schema = schema(
        "orchestration_result",
        field("goal", string()),
        field("plan", array_of(PLAN_TASK)),
        field("results", object_of()),
        field("summary", string()),
        field("key_findings", array_of(string()), required=False),
    )

    def _plan_request(self, text: str, max_tasks: int) -> GenerationRequest:
        prompt = build_prompt(
            f"Break this objective into concrete subtasks:\n{text}",
            constraints=[
                f"Use at most {max_tasks} tasks",
                "Give every task a short unique id",
                "List in depends_on only tasks whose results the task needs",
            ],
        )
        return GenerationRequest(ModelProfile.COMPLEX, prompt, schema=PLAN)

    def _worker_request(self, goal: str, task: PlanTask, inputs: dict[str, Any]) -> GenerationRequest:
        context = f"Overall goal: {goal}"
        if inputs:
            context += f"\n\nResults of prerequisite tasks:\n{orjson.dumps(inputs).decode()}"
        return GenerationRequest(ModelProfile.FAST, build_prompt(f"Complete this task: {task.description}",
                                                                  context=context), schema=TASK_RESULT)

    def _summary_request(self, text: str, plan: list[Any], results: dict[str, Any]) -> GenerationRequest:
        prompt = build_prompt(
            "Summarize the outcome of this plan for the original objective.",
            context=(f"Objective:\n{text}\n\nPlan:\n{orjson.dumps(plan).decode()}\n\n"
                     f"Results:\n{orjson.dumps(results).decode()}"),
        )
        return GenerationRequest(ModelProfile.COMPLEX, prompt, schema=SUMMARY)

    async def run(self, execution: PatternExecution, caps: Capabilities) -> AsyncIterator[Any]:
        settings = caps.settings.orchestrator
        raw_plan = await caps.structured(self._plan_request(execution.input, settings.max_tasks))
        goal = raw_plan["goal"]
        tasks = [PlanTask.from_dict(t) for t in raw_plan["tasks"]]
        validate_plan(tasks, max_tasks=settings.max_tasks)

        async def work(task: PlanTask, inputs: dict[str, Any]) -> Any:
            return await caps.structured(self._worker_request(goal, task, inputs))

        scheduler = TaskScheduler(work, max_concurrency=settings.max_concurrency, max_tasks=settings.max_tasks)
        plan = plan_summary(tasks)
        execution.record("orchestrator.plan", tasks=len(tasks), goal=goal)
        yield {"goal": goal, "plan": plan}

        results: dict[str, Any] = {}
        async for outcome in scheduler.run(tasks):
            results[outcome.task.id] = outcome.result
            execution.record("orchestrator.task.complete", task=outcome.task.id,
                             completed=len(results), total=len(tasks))
            yield {"goal": goal, "plan": plan, "results": dict(results)}

        async for value in caps.stream(self._summary_request(execution.input, plan, results)):
            yield {"goal": goal, "plan": plan, "results": results, **value}
