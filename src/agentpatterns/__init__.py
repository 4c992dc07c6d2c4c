"""Agentpatterns - Agent interaction patterns with schema-typed streaming.

Runs multi-step model interactions (sequential refinement, routing, parallel
fan-out, orchestrator-workers, evaluator-optimizer loops, tool use) and
streams each one as an ordered series of frames carrying progressively more
complete, schema-valid JSON values.

Quick Start:
    >>> from agentpatterns import PatternExecutor, RoutingStrategy, OpenAICompatibleInvoker, get_settings
    >>>
    >>> backend = OpenAICompatibleInvoker.from_settings(get_settings().model)
    >>> executor = PatternExecutor(RoutingStrategy(), backend)
    >>> async for frame in executor.open("I was charged twice this month"):
    ...     print(frame.sequence, frame.payload)

Streaming reconstruction on its own:
    >>> from agentpatterns import StreamReconciler, schema, field, string
    >>> rec = StreamReconciler(schema("answer", field("title", string())))
    >>> rec.feed('{"tit'), rec.feed('le":"Hi"}')
    (None, None)
    >>> rec.complete().payload
    {'title': 'Hi'}

Testing with a scripted backend:
    >>> from agentpatterns.foundation.testing import ScriptedInvoker
    >>> invoker = ScriptedInvoker()
    >>> invoker.push({"category": "support", "complexity": "simple", "reasoning": "..."})

HTTP (requires the ``http`` extra):
    >>> from agentpatterns.ext.http import serve
    >>> serve()  # POST /api/{stream,sequential,routing,parallel,orchestrator,evaluator,chat}
"""

from __future__ import annotations

__version__ = "0.3.0"

# Config
from .foundation.config import AgentPatternsSettings, clear_settings_cache, get_settings

# Errors
from .foundation.errors import (
    CancellationRequested,
    ErrorCode,
    Failure,
    InputValidationError,
    PatternError,
    PlanValidationError,
    ProviderError,
    SchemaViolation,
    StepLimitExceeded,
    ToolExecutionError,
    ToolTimeout,
)

# Schema
from .foundation.schema import (
    SchemaSpec,
    any_value,
    array_of,
    boolean,
    choice,
    conform,
    field,
    integer,
    number,
    object_of,
    schema,
    string,
)

# Streaming
from .io.streaming import (
    FrameEmitter,
    NDJSONAdapter,
    PrefixTextAdapter,
    StreamFrame,
    StreamReconciler,
    parse_partial,
)

# Models
from .models import (
    GenerationRequest,
    Message,
    ModelInvoker,
    ModelProfile,
    OpenAICompatibleInvoker,
    ResilientInvoker,
    Role,
)

# Runtime
from .runtime.agents import (
    DirectStreamStrategy,
    EvaluatorOptimizerStrategy,
    OrchestratorStrategy,
    ParallelStrategy,
    PatternExecutor,
    PatternRun,
    PatternStrategy,
    RoutingStrategy,
    SequentialStrategy,
    ToolUseStrategy,
    default_executors,
)
from .runtime.concurrency import CancelSignal, TaskGroup
from .runtime.convergence import ConvergenceController, ConvergencePolicy, Evaluation, IterationRecord
from .runtime.observability import (
    LoggingObserver,
    NoOpObserver,
    Observer,
    RecordingObserver,
    configure_logging,
    get_logger,
)
from .runtime.tools import ToolCallRequest, ToolCallResult, ToolInvocationRouter, tool

__all__ = [
    "__version__",
    # Config
    "AgentPatternsSettings", "get_settings", "clear_settings_cache",
    # Errors
    "ErrorCode", "Failure", "PatternError", "InputValidationError", "ProviderError", "SchemaViolation",
    "ToolTimeout", "ToolExecutionError", "PlanValidationError", "StepLimitExceeded", "CancellationRequested",
    # Schema
    "SchemaSpec", "schema", "field", "string", "choice", "integer", "number", "boolean", "any_value",
    "array_of", "object_of", "conform",
    # Streaming
    "StreamFrame", "FrameEmitter", "StreamReconciler", "PrefixTextAdapter", "NDJSONAdapter", "parse_partial",
    # Models
    "ModelInvoker", "ResilientInvoker", "OpenAICompatibleInvoker", "GenerationRequest", "Message",
    "ModelProfile", "Role",
    # Patterns
    "PatternExecutor", "PatternRun", "PatternStrategy", "default_executors",
    "DirectStreamStrategy", "SequentialStrategy", "RoutingStrategy", "ParallelStrategy",
    "OrchestratorStrategy", "EvaluatorOptimizerStrategy", "ToolUseStrategy",
    # Convergence
    "ConvergenceController", "ConvergencePolicy", "Evaluation", "IterationRecord",
    # Tools
    "ToolInvocationRouter", "ToolCallRequest", "ToolCallResult", "tool",
    # Concurrency
    "TaskGroup", "CancelSignal",
    # Observability
    "Observer", "LoggingObserver", "RecordingObserver", "NoOpObserver", "configure_logging", "get_logger",
]
