"""Parallel pattern: independent reviews fanned out, then one aggregation."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Any

import orjson

from agentpatterns.foundation.schema import (
    SchemaSpec,
    array_of,
    choice,
    field,
    number,
    schema,
    string,
)
from agentpatterns.models import GenerationRequest, ModelProfile, build_prompt
from agentpatterns.runtime.concurrency import TaskGroup
from agentpatterns.runtime.execution import PatternExecution

from .base import Capabilities


@dataclass(frozen=True, slots=True)
class Branch:
    """One fan-out call.

    Attributes:
        name: Key of this branch's result in the output
        instruction: What this branch evaluates
        schema: Branch result shape (disjoint from the other branches)
        profile: Capability tier for the call
    """

    name: str
    instruction: str
    schema: SchemaSpec
    profile: ModelProfile = ModelProfile.FAST


DEFAULT_BRANCHES: tuple[Branch, ...] = (
    Branch("security", "Review for security vulnerabilities.", schema(
        "security_review",
        field("vulnerabilities", array_of(string())),
        field("risk_level", choice("low", "medium", "high")),
        field("score", number(minimum=1, maximum=10)),
    )),
    Branch("performance", "Review for performance problems.", schema(
        "performance_review",
        field("bottlenecks", array_of(string())),
        field("optimizations", array_of(string())),
        field("score", number(minimum=1, maximum=10)),
    )),
    Branch("maintainability", "Review for readability and maintainability.", schema(
        "maintainability_review",
        field("issues", array_of(string())),
        field("suggestions", array_of(string())),
        field("score", number(minimum=1, maximum=10)),
    )),
)

AGGREGATION = schema(
    "review_summary",
    field("summary", string()),
    field("priorities", array_of(string())),
    field("overall_score", number(minimum=1, maximum=10)),
)


class ParallelStrategy:
    """N concurrent branch calls joined by a barrier, then a streamed aggregation.

    All-or-nothing: a branch that fails after its retries cancels its
    siblings and fails the execution; the aggregation call is never made.
    A snapshot is yielded as each branch completes.
    """

    name = "parallel"

    def __init__(self, branches: Sequence[Branch] = DEFAULT_BRANCHES, *, aggregation: SchemaSpec = AGGREGATION) -> None:
        names = [b.name for b in branches]
        if not branches or len(set(names)) != len(names):
            raise ValueError("Parallel branches must be non-empty with unique names")
        self.branches = tuple(branches)
        self.aggregation = aggregation
        self.result_schema = schema(
            "parallel_result",
            field("reviews", schema("reviews", *(field(b.name, b.schema) for b in self.branches))),
            *aggregation.fields,
        )

    def _ordered_prefix(self, reviews: dict[str, Any]) -> dict[str, Any]:
        """Completed reviews up to the first missing branch, in branch order.

        Snapshots only ever grow at the end, which keeps the text wire
        prefix-consistent whatever order the branches finish in.
        """
        out: dict[str, Any] = {}
        for branch in self.branches:
            if branch.name not in reviews:
                break
            out[branch.name] = reviews[branch.name]
        return out

    def _branch_request(self, branch: Branch, text: str) -> GenerationRequest:
        return GenerationRequest(branch.profile, build_prompt(branch.instruction, context=text), schema=branch.schema)

    def _aggregation_request(self, text: str, reviews: dict[str, Any]) -> GenerationRequest:
        prompt = build_prompt(
            "Combine these independent reviews into one prioritized summary.",
            context=f"Input:\n{text}\n\nReviews:\n{orjson.dumps(reviews).decode()}",
        )
        return GenerationRequest(ModelProfile.COMPLEX, prompt, schema=self.aggregation)

    async def run(self, execution: PatternExecution, caps: Capabilities) -> AsyncIterator[Any]:
        text = execution.input
        reviews: dict[str, Any] = {}
        async with TaskGroup() as tg:
            for branch in self.branches:
                tg.spawn(caps.structured(self._branch_request(branch, text)), name=branch.name)
            async for handle in tg.as_completed():
                assert handle.name is not None
                reviews[handle.name] = handle.result()
                execution.record("parallel.branch.complete", branch=handle.name,
                                 completed=len(reviews), total=len(self.branches))
                yield {"reviews": self._ordered_prefix(reviews)}

        reviews = self._ordered_prefix(reviews)
        async for value in caps.stream(self._aggregation_request(text, reviews)):
            yield {"reviews": reviews, **value}
