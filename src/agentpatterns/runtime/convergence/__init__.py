"""Bounded iterative refinement."""

from .controller import (
    ConvergenceController,
    ConvergenceOutcome,
    ConvergencePhase,
    ConvergencePolicy,
    ConvergenceUpdate,
    Evaluation,
    IterationRecord,
)

__all__ = [
    "ConvergenceController", "ConvergencePolicy", "ConvergencePhase", "ConvergenceUpdate",
    "ConvergenceOutcome", "Evaluation", "IterationRecord",
]
