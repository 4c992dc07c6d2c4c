"""Runtime - Execution flow, control, and monitoring.

Contains: agents, convergence, tools, retry, concurrency, observability.
"""

from __future__ import annotations

__all__ = [
    # Agents
    "PatternExecutor", "PatternRun", "PatternStrategy", "Capabilities", "default_executors",
    "DirectStreamStrategy", "SequentialStrategy", "RoutingStrategy", "ParallelStrategy",
    "OrchestratorStrategy", "EvaluatorOptimizerStrategy", "ToolUseStrategy", "TaskScheduler",
    # Convergence
    "ConvergenceController", "ConvergencePolicy", "Evaluation", "IterationRecord",
    # Tools
    "ToolInvocationRouter", "ToolDescriptor", "ToolCallRequest", "ToolCallResult", "tool", "calculator",
    # Execution
    "PatternExecution",
]


def __getattr__(name: str):
    agents_attrs = {
        "PatternExecutor", "PatternRun", "PatternStrategy", "Capabilities", "default_executors",
        "DirectStreamStrategy", "SequentialStrategy", "RoutingStrategy", "ParallelStrategy",
        "OrchestratorStrategy", "EvaluatorOptimizerStrategy", "ToolUseStrategy", "TaskScheduler",
    }
    if name in agents_attrs:
        from . import agents
        return getattr(agents, name)

    if name in {"ConvergenceController", "ConvergencePolicy", "Evaluation", "IterationRecord"}:
        from . import convergence
        return getattr(convergence, name)

    if name in {"ToolInvocationRouter", "ToolDescriptor", "ToolCallRequest", "ToolCallResult", "tool", "calculator"}:
        from . import tools
        return getattr(tools, name)

    if name == "PatternExecution":
        from .execution import PatternExecution
        return PatternExecution

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
