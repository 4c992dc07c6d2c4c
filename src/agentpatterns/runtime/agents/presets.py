"""Ready-made executors for every built-in pattern."""

from __future__ import annotations

from agentpatterns.foundation.config import AgentPatternsSettings, get_settings
from agentpatterns.models import ModelInvoker, ResilientInvoker
from agentpatterns.runtime.observability import LoggingObserver, Observer
from agentpatterns.runtime.tools import ToolInvocationRouter, calculator

from .base import PatternExecutor, PatternStrategy
from .direct import DirectStreamStrategy
from .evaluator import EvaluatorOptimizerStrategy
from .orchestrator import OrchestratorStrategy
from .parallel import ParallelStrategy
from .routing import RoutingStrategy
from .sequential import SequentialStrategy
from .tool_use import ToolUseStrategy


def default_executors(
    invoker: ModelInvoker | ResilientInvoker,
    *,
    settings: AgentPatternsSettings | None = None,
    observer: Observer | None = None,
    router: ToolInvocationRouter | None = None,
) -> dict[str, PatternExecutor]:
    """One executor per pattern, keyed by route name, sharing one invoker.

    The chat executor gets `router`, or a router with the calculator tool.
    """
    settings = settings or get_settings()
    observer = observer or LoggingObserver()
    shared = invoker if isinstance(invoker, ResilientInvoker) else ResilientInvoker.from_settings(
        invoker, settings, observer)
    if router is None:
        router = ToolInvocationRouter.from_settings(settings.tools, observer)
        router.register(calculator())

    def executor(strategy: PatternStrategy, tools: ToolInvocationRouter | None = None) -> PatternExecutor:
        return PatternExecutor(strategy, shared, router=tools, observer=observer, settings=settings)

    return {
        "stream": executor(DirectStreamStrategy()),
        "sequential": executor(SequentialStrategy()),
        "routing": executor(RoutingStrategy()),
        "parallel": executor(ParallelStrategy()),
        "orchestrator": executor(OrchestratorStrategy()),
        "evaluator": executor(EvaluatorOptimizerStrategy()),
        "chat": executor(ToolUseStrategy(), router),
    }
