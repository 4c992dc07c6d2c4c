"""Bounded evaluate/improve loop shared by refinement patterns.

State machine::

    PRODUCED -> EVALUATED -> CONVERGED -> DONE
                          -> IMPROVING -> PRODUCED ... (budget left)
                          -> DONE                      (budget spent)

Exhaustion rule: at most `max_iterations` evaluation calls in total. After
the k-th evaluation the loop stops if the score reached `target_score` or if
k == max_iterations. With `polish_final` one more improvement is applied
after exhaustion without being evaluated; this is how the single-pass
sequential pattern gets its "improve if below threshold" branch.

Producers and improvers may return an awaitable (one candidate) or an async
iterator of successive drafts, the last of which is the candidate. Drafts
are surfaced through `progress()` so callers can stream them.
"""

from __future__ import annotations

import copy
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Annotated, Any, Generic, Self, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from agentpatterns.foundation.errors import JsonDict, ProviderMalformedResponse, SchemaViolation
from agentpatterns.runtime.concurrency import checkpoint
from agentpatterns.runtime.observability import EMPTY_CONTEXT, EventContext, NoOpObserver, Observer

T = TypeVar("T")

Score = Annotated[float, Field(ge=1.0, le=10.0)]

Step = Awaitable[T] | AsyncIterator[T]


class ConvergencePhase(StrEnum):
    PRODUCED = "produced"
    EVALUATED = "evaluated"
    CONVERGED = "converged"
    IMPROVING = "improving"
    DONE = "done"


class Evaluation(BaseModel):
    """One evaluator verdict.

    Attributes:
        score: Overall quality in [1, 10]
        feedback: What to change
        issues: Specific problems found
        details: Any further evaluator output (sub-scores, strengths, ...)
    """

    model_config = ConfigDict(frozen=True)

    score: Score
    feedback: str = ""
    issues: tuple[str, ...] = ()
    details: JsonDict = Field(default_factory=dict)

    @classmethod
    def from_value(cls, value: JsonDict) -> Self:
        """Build from a structured evaluator response.

        `issues` falls back to `improvements` (the standard evaluation
        schema's name for them). Every other key lands in `details`.

        Raises:
            SchemaViolation: score missing or outside [1, 10]
        """
        issues = value.get("issues", value.get("improvements")) or ()
        details = {k: v for k, v in value.items() if k not in ("score", "feedback", "issues", "improvements")}
        try:
            return cls(score=value.get("score"), feedback=value.get("feedback") or "",  # type: ignore[arg-type]
                       issues=tuple(issues), details=details)
        except ValidationError as e:
            errors = [f"$.{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()]
            raise SchemaViolation(f"evaluation: {errors[0]}", violations=errors,
                                  details={"schema": "evaluation", "mode": "strict"}) from e


@dataclass(frozen=True, slots=True)
class IterationRecord:
    """One evaluated candidate. `index` counts evaluations from 1."""

    index: int
    value: Any
    score: float
    feedback: str
    issues: tuple[str, ...] = ()
    details: JsonDict = field(default_factory=dict)

    def to_dict(self) -> JsonDict:
        return {"index": self.index, "score": self.score, "feedback": self.feedback,
                "issues": list(self.issues), **self.details}


class ConvergencePolicy(BaseModel):
    """Loop bounds.

    Attributes:
        max_iterations: Evaluation budget (>= 1)
        target_score: Score that ends the loop early, in (1, 10]
        polish_final: Apply one unevaluated improvement after exhaustion
    """

    model_config = ConfigDict(frozen=True)

    max_iterations: Annotated[int, Field(ge=1)] = 3
    target_score: Annotated[float, Field(gt=1.0, le=10.0)] = 8.0
    polish_final: bool = False


@dataclass(frozen=True, slots=True)
class ConvergenceUpdate:
    """Progress notification from `progress()`.

    `record` is set on EVALUATED updates; other updates carry the current
    candidate or a draft of the next one.
    """

    phase: ConvergencePhase
    candidate: Any
    record: IterationRecord | None = None


@dataclass(frozen=True, slots=True)
class ConvergenceOutcome:
    final: Any
    records: tuple[IterationRecord, ...]
    final_score: float | None
    converged: bool
    polished: bool = False


_MISSING: Any = object()


class ConvergenceController(Generic[T]):
    """Drives produce -> (evaluate -> improve)* for one execution.

    Example:
        >>> controller = ConvergenceController(
        ...     ConvergencePolicy(max_iterations=3, target_score=8.5),
        ...     produce=lambda: translate(text),
        ...     evaluate=lambda draft: judge(draft),
        ...     improve=lambda draft, ev: revise(draft, ev.feedback),
        ... )
        >>> outcome = await controller.run()
        >>> outcome.final_score
        9.0
    """

    def __init__(
        self,
        policy: ConvergencePolicy,
        *,
        produce: Callable[[], Step[T]],
        evaluate: Callable[[T], Awaitable[Evaluation]],
        improve: Callable[[T, Evaluation], Step[T]],
        observer: Observer | None = None,
        context: EventContext = EMPTY_CONTEXT,
    ) -> None:
        self.policy = policy
        self.records: list[IterationRecord] = []
        self.phase: ConvergencePhase | None = None
        self.converged = False
        self.polished = False
        self._produce = produce
        self._evaluate = evaluate
        self._improve = improve
        self._observer = observer or NoOpObserver()
        self._context = context
        self._candidate: Any = _MISSING

    @property
    def final_score(self) -> float | None:
        return self.records[-1].score if self.records else None

    async def _step(self, result: Step[T], phase: ConvergencePhase) -> AsyncIterator[ConvergenceUpdate]:
        self.phase = phase
        if isinstance(result, AsyncIterator):
            last: Any = _MISSING
            async for draft in result:
                last = draft
                yield ConvergenceUpdate(phase, draft)
            if last is _MISSING:
                raise ProviderMalformedResponse(f"{phase.value} step produced no candidate")
            self._candidate = last
        else:
            self._candidate = await result
            yield ConvergenceUpdate(phase, self._candidate)

    async def progress(self) -> AsyncIterator[ConvergenceUpdate]:
        """Run the loop, yielding drafts, evaluations and the final candidate."""
        if self.phase is not None:
            raise RuntimeError("ConvergenceController can only run once")
        policy = self.policy
        async for update in self._step(self._produce(), ConvergencePhase.PRODUCED):
            yield update

        while True:
            await checkpoint()
            evaluation = await self._evaluate(self._candidate)
            record = IterationRecord(
                index=len(self.records) + 1,
                value=copy.deepcopy(self._candidate),
                score=evaluation.score,
                feedback=evaluation.feedback,
                issues=evaluation.issues,
                details=dict(evaluation.details),
            )
            self.records.append(record)
            self.phase = ConvergencePhase.EVALUATED
            self._emit("convergence.iteration", {"index": record.index, "score": record.score,
                                                 "target_score": policy.target_score,
                                                 "max_iterations": policy.max_iterations})
            yield ConvergenceUpdate(ConvergencePhase.EVALUATED, self._candidate, record)

            if record.score >= policy.target_score:
                self.converged = True
                self.phase = ConvergencePhase.CONVERGED
                self._emit("convergence.converged", {"iterations": record.index, "score": record.score})
                break
            if record.index >= policy.max_iterations:
                self._emit("convergence.exhausted", {"iterations": record.index, "score": record.score,
                                                     "polish": policy.polish_final})
                if policy.polish_final:
                    async for update in self._step(self._improve(self._candidate, evaluation),
                                                   ConvergencePhase.IMPROVING):
                        yield update
                    self.polished = True
                break
            async for update in self._step(self._improve(self._candidate, evaluation), ConvergencePhase.IMPROVING):
                yield update

        self.phase = ConvergencePhase.DONE
        yield ConvergenceUpdate(ConvergencePhase.DONE, self._candidate)

    async def iterate(self) -> AsyncIterator[IterationRecord]:
        """Yield each IterationRecord as it is appended."""
        async for update in self.progress():
            if update.record is not None:
                yield update.record

    async def run(self) -> ConvergenceOutcome:
        async for _ in self.progress():
            pass
        return self.outcome()

    def outcome(self) -> ConvergenceOutcome:
        if self.phase is not ConvergencePhase.DONE:
            raise RuntimeError("ConvergenceController has not finished")
        return ConvergenceOutcome(self._candidate, tuple(self.records), self.final_score,
                                  self.converged, self.polished)

    def _emit(self, name: str, attributes: JsonDict) -> None:
        self._observer.record_event(self._context, name, attributes)
