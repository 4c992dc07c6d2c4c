"""Evaluator-optimizer pattern: translate, judge, revise until good enough."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import orjson

from agentpatterns.foundation.errors import JsonDict
from agentpatterns.foundation.schema import array_of, boolean, field, integer, number, schema, string
from agentpatterns.models import GenerationRequest, ModelProfile, build_prompt
from agentpatterns.runtime.convergence import (
    ConvergenceController,
    ConvergencePhase,
    ConvergencePolicy,
    Evaluation,
    IterationRecord,
)
from agentpatterns.runtime.execution import PatternExecution

from .base import Capabilities

TRANSLATION = schema(
    "translation",
    field("translation", string(), description="The translated text"),
    field("notes", string(), required=False, description="Translator notes on hard choices"),
)

TRANSLATION_EVALUATION = schema(
    "translation_evaluation",
    field("score", number(minimum=1, maximum=10), description="Overall quality from 1-10"),
    field("accuracy", number(minimum=1, maximum=10), description="Meaning preserved"),
    field("naturalness", number(minimum=1, maximum=10), description="Reads like a native text"),
    field("domain_fit", number(minimum=1, maximum=10), description="Terminology and register fit the domain"),
    field("feedback", string()),
    field("issues", array_of(string())),
)

ITERATION = schema(
    "translation_iteration",
    field("index", integer(minimum=1)),
    field("translation", string()),
    field("score", number(minimum=1, maximum=10)),
    field("accuracy", number(minimum=1, maximum=10), required=False),
    field("naturalness", number(minimum=1, maximum=10), required=False),
    field("domain_fit", number(minimum=1, maximum=10), required=False),
    field("feedback", string()),
    field("issues", array_of(string())),
)


def iteration_summary(record: IterationRecord) -> JsonDict:
    out: JsonDict = {"index": record.index, "translation": record.value["translation"], "score": record.score}
    for key in ("accuracy", "naturalness", "domain_fit"):
        if key in record.details:
            out[key] = record.details[key]
    out["feedback"] = record.feedback
    out["issues"] = list(record.issues)
    return out


class EvaluatorOptimizerStrategy:
    """translate -> (evaluate -> revise)* bounded by the convergence settings.

    One snapshot per evaluated iteration. ``iterations`` leads the result so
    successive snapshots only append; the chosen translation, final score and
    convergence flag close the document.
    """

    name = "evaluator"
    result_schema = schema(
        "evaluator_result",
        field("iterations", array_of(ITERATION)),
        field("translation", string()),
        field("final_score", number(minimum=1, maximum=10)),
        field("converged", boolean()),
    )

    def __init__(self, target_language: str = "Spanish", *, domain: str | None = None,
                 policy: ConvergencePolicy | None = None) -> None:
        self.target_language = target_language
        self.domain = domain
        self.policy = policy

    def _translate_request(self, text: str) -> GenerationRequest:
        constraints = ["Preserve meaning, tone and formatting"]
        if self.domain:
            constraints.append(f"Use {self.domain} terminology")
        prompt = build_prompt(f"Translate the following text into {self.target_language}:\n{text}",
                              constraints=constraints)
        return GenerationRequest(ModelProfile.FAST, prompt, schema=TRANSLATION)

    def _evaluation_request(self, text: str, candidate: Any) -> GenerationRequest:
        prompt = build_prompt(
            f"Evaluate this {self.target_language} translation.",
            context=f"Source:\n{text}\n\nTranslation:\n{candidate['translation']}",
            constraints=[
                "Score accuracy, naturalness and domain fit from 1-10",
                "Give an overall score from 1-10",
                "List every concrete issue",
            ],
        )
        return GenerationRequest(ModelProfile.COMPLEX, prompt, schema=TRANSLATION_EVALUATION)

    def _revise_request(self, text: str, candidate: Any, evaluation: Evaluation) -> GenerationRequest:
        prompt = build_prompt(
            f"Revise this {self.target_language} translation using the feedback.",
            context=(f"Source:\n{text}\n\nCurrent translation:\n{orjson.dumps(candidate).decode()}\n\n"
                     f"Feedback (score {evaluation.score}/10):\n{evaluation.feedback}"),
            constraints=list(evaluation.issues) or None,
        )
        return GenerationRequest(ModelProfile.COMPLEX, prompt, schema=TRANSLATION)

    async def run(self, execution: PatternExecution, caps: Capabilities) -> AsyncIterator[Any]:
        text = execution.input
        settings = caps.settings.convergence
        policy = self.policy or ConvergencePolicy(max_iterations=settings.max_iterations,
                                                  target_score=settings.target_score)

        async def evaluate(candidate: Any) -> Evaluation:
            return Evaluation.from_value(await caps.structured(self._evaluation_request(text, candidate)))

        async def revise(candidate: Any, evaluation: Evaluation) -> Any:
            return await caps.structured(self._revise_request(text, candidate, evaluation))

        controller: ConvergenceController[Any] = ConvergenceController(
            policy,
            produce=lambda: caps.structured(self._translate_request(text)),
            evaluate=evaluate,
            improve=revise,
            observer=caps.observer,
            context=caps.context,
        )

        iterations: list[JsonDict] = []
        async for update in controller.progress():
            if update.phase is ConvergencePhase.EVALUATED:
                assert update.record is not None
                execution.iterations.append(update.record)
                iterations.append(iteration_summary(update.record))
                yield {"iterations": list(iterations)}
            elif update.phase is ConvergencePhase.DONE:
                yield {
                    "iterations": list(iterations),
                    "translation": update.candidate["translation"],
                    "final_score": controller.final_score,
                    "converged": controller.converged,
                }
