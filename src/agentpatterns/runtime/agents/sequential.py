"""Sequential pattern: generate, evaluate, improve once if below threshold."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import orjson

from agentpatterns.foundation.errors import JsonDict
from agentpatterns.foundation.schema import (
    SchemaSpec,
    array_of,
    boolean,
    field,
    number,
    schema,
    string,
)
from agentpatterns.models import GenerationRequest, ModelProfile, build_prompt, evaluation_schema
from agentpatterns.runtime.convergence import (
    ConvergenceController,
    ConvergencePhase,
    ConvergencePolicy,
    Evaluation,
    IterationRecord,
)
from agentpatterns.runtime.execution import PatternExecution

from .base import Capabilities

DRAFT = schema(
    "draft",
    field("title", string(), description="Short headline"),
    field("content", string(), description="The generated text"),
    description="Generated content",
)

EVALUATION_SUMMARY = schema(
    "evaluation_summary",
    field("score", number(minimum=1, maximum=10)),
    field("feedback", string()),
    field("issues", array_of(string()), required=False),
)


def summarize(record: IterationRecord) -> JsonDict:
    return {"score": record.score, "feedback": record.feedback, "issues": list(record.issues)}


class SequentialStrategy:
    """generate -> evaluate -> (score < threshold ? one streamed improvement : passthrough).

    A single deterministic branch built on the ConvergenceController with a
    budget of one evaluation and `polish_final`, so the improvement (if any)
    is never re-evaluated.

    Snapshots: ``{draft}`` while drafting, then ``{draft, evaluation}``, then
    ``{draft, evaluation, improved, final}``. ``final`` comes last so a
    streamed improvement only ever extends the serialized document.
    """

    name = "sequential"

    def __init__(self, content_schema: SchemaSpec = DRAFT, *, threshold: float | None = None) -> None:
        self.content_schema = content_schema
        self.threshold = threshold
        self.result_schema = schema(
            "sequential_result",
            field("draft", content_schema),
            field("evaluation", EVALUATION_SUMMARY),
            field("improved", boolean()),
            field("final", content_schema),
        )

    def _draft_request(self, text: str) -> GenerationRequest:
        prompt = build_prompt(
            f"Write content for the following request:\n{text}",
            constraints=["Be specific and accurate", "Give the content a short, descriptive title"],
        )
        return GenerationRequest(ModelProfile.FAST, prompt, schema=self.content_schema)

    def _evaluation_request(self, text: str, candidate: Any) -> GenerationRequest:
        prompt = build_prompt(
            "Evaluate this content for quality, clarity and how well it answers the request.",
            context=f"Request:\n{text}\n\nContent:\n{orjson.dumps(candidate).decode()}",
        )
        return GenerationRequest(ModelProfile.FAST, prompt, schema=evaluation_schema())

    def _improve_request(self, text: str, candidate: Any, evaluation: Evaluation) -> GenerationRequest:
        prompt = build_prompt(
            "Improve this content using the evaluation feedback. Keep what already works.",
            context=(f"Request:\n{text}\n\nContent:\n{orjson.dumps(candidate).decode()}\n\n"
                     f"Feedback (score {evaluation.score}/10):\n{evaluation.feedback}"),
            constraints=list(evaluation.issues) or None,
        )
        return GenerationRequest(ModelProfile.COMPLEX, prompt, schema=self.content_schema)

    async def run(self, execution: PatternExecution, caps: Capabilities) -> AsyncIterator[Any]:
        text = execution.input

        async def evaluate(candidate: Any) -> Evaluation:
            return Evaluation.from_value(await caps.structured(self._evaluation_request(text, candidate)))

        controller: ConvergenceController[Any] = ConvergenceController(
            ConvergencePolicy(
                max_iterations=1,
                target_score=self.threshold or caps.settings.convergence.sequential_threshold,
                polish_final=True,
            ),
            produce=lambda: caps.stream(self._draft_request(text)),
            evaluate=evaluate,
            improve=lambda candidate, ev: caps.stream(self._improve_request(text, candidate, ev)),
            observer=caps.observer,
            context=caps.context,
        )

        snapshot: JsonDict = {}
        async for update in controller.progress():
            match update.phase:
                case ConvergencePhase.PRODUCED:
                    snapshot = {"draft": update.candidate}
                case ConvergencePhase.EVALUATED:
                    assert update.record is not None
                    execution.iterations.append(update.record)
                    snapshot = {**snapshot, "evaluation": summarize(update.record)}
                case ConvergencePhase.IMPROVING:
                    snapshot = {**snapshot, "improved": True, "final": update.candidate}
                case ConvergencePhase.DONE:
                    snapshot = {**snapshot, "improved": controller.polished, "final": update.candidate}
            yield snapshot
