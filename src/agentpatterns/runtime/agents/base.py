"""Pattern executor: runs one strategy per invocation and frames its output.

A strategy is an async generator of payload snapshots. The executor owns
everything around it:

- eager input validation (before any model call)
- a fresh PatternExecution with its own cancel signal and records
- capabilities bound to that execution (invoker, router, observer)
- the FrameEmitter, so every pattern gets the same frame invariants
- strict validation of the last snapshot against the result schema
- turning failures into one terminal failure frame

Cancellation ends the frame stream without a terminal frame.
"""

from __future__ import annotations

import time
import traceback
from collections.abc import AsyncIterator, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from agentpatterns.foundation.config import AgentPatternsSettings, get_settings
from agentpatterns.foundation.errors import (
    CancellationRequested,
    Failure,
    InputValidationError,
    PatternError,
    SchemaViolation,
)
from agentpatterns.foundation.schema import SchemaSpec, conform
from agentpatterns.io.streaming import FrameEmitter, StreamFrame, StreamReconciler
from agentpatterns.models import GenerationRequest, Message, ModelInvoker, ResilientInvoker, Role, validate_input
from agentpatterns.runtime.concurrency import CancelSignal
from agentpatterns.runtime.execution import PatternExecution
from agentpatterns.runtime.observability import EventContext, LoggingObserver, Observer

if TYPE_CHECKING:
    from agentpatterns.runtime.tools import ToolInvocationRouter

_NOTHING: Any = object()
_CALLER_ROLES = frozenset({Role.SYSTEM, Role.USER, Role.ASSISTANT})


@dataclass(frozen=True, slots=True)
class Capabilities:
    """What a strategy may use, already bound to its execution."""

    invoker: ResilientInvoker
    settings: AgentPatternsSettings
    observer: Observer
    context: EventContext
    router: ToolInvocationRouter | None = None

    async def structured(self, request: GenerationRequest) -> Any:
        return await self.invoker.generate_structured(request)

    async def stream(self, request: GenerationRequest) -> AsyncIterator[Any]:
        """Partial values of a streamed structured call, ending with the strict final value.

        Raises:
            SchemaViolation: the completed text is truncated or does not conform
        """
        if request.schema is None:
            raise InputValidationError("Streaming structured values requires a request schema")
        reconciler = StreamReconciler(request.schema, observer=self.observer, context=self.context)
        async for value in reconciler.stream_values(self.invoker.invoke_streaming(request)):
            yield value
        yield reconciler.final_value()

    def require_router(self) -> ToolInvocationRouter:
        if self.router is None:
            raise InputValidationError("This pattern needs a ToolInvocationRouter")
        return self.router


@runtime_checkable
class PatternStrategy(Protocol):
    """One interaction pattern.

    Attributes:
        name: Pattern name used in events and routes
        result_schema: Shape the final snapshot must strictly satisfy
    """

    name: str
    result_schema: SchemaSpec

    def run(self, execution: PatternExecution, caps: Capabilities) -> AsyncIterator[Any]: ...


def _to_message(item: Message | Mapping[str, Any]) -> Message:
    if isinstance(item, Message):
        return item
    if not isinstance(item, Mapping):
        raise InputValidationError("Each message must be an object with role and content")
    try:
        role = Role(item.get("role", "user"))
    except ValueError as e:
        raise InputValidationError(f"Unknown message role: {item.get('role')!r}") from e
    if role not in _CALLER_ROLES:
        raise InputValidationError(f"Message role '{role}' cannot be sent by a caller")
    content = item.get("content")
    if not isinstance(content, str):
        raise InputValidationError("Message content must be a string")
    return Message(role, content)


class PatternExecutor:
    """Composes a strategy with injected capabilities.

    Example:
        >>> executor = PatternExecutor(RoutingStrategy(), backend, settings=get_settings())
        >>> async for frame in executor.open("My invoice is wrong"):
        ...     print(frame.sequence, frame.payload)
    """

    __slots__ = ("strategy", "invoker", "router", "observer", "settings")

    def __init__(
        self,
        strategy: PatternStrategy,
        invoker: ModelInvoker | ResilientInvoker,
        *,
        router: ToolInvocationRouter | None = None,
        observer: Observer | None = None,
        settings: AgentPatternsSettings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.observer = observer or LoggingObserver()
        self.strategy = strategy
        self.invoker = invoker if isinstance(invoker, ResilientInvoker) else ResilientInvoker.from_settings(
            invoker, self.settings, self.observer)
        self.router = router

    @property
    def name(self) -> str:
        return self.strategy.name

    def open(
        self,
        request: str | Sequence[Message | Mapping[str, Any]],
        *,
        cancel: CancelSignal | None = None,
    ) -> PatternRun:
        """Validate input and prepare an execution; iterate the run for frames.

        Raises:
            InputValidationError: empty, oversized or malformed input. Raised
                here, before any generation call.
        """
        max_length = self.settings.input.max_length
        if isinstance(request, str):
            text, messages = request, ()
        else:
            messages = tuple(_to_message(m) for m in request)
            if not messages or messages[-1].role is not Role.USER:
                raise InputValidationError("Conversation must end with a user message")
            text = messages[-1].content
        suspicious = validate_input(text, max_length)

        execution = PatternExecution(
            pattern=self.strategy.name,
            schema=self.strategy.result_schema,
            input=text,
            messages=messages,
            cancel=cancel or CancelSignal(),
            observer=self.observer,
        )
        if suspicious:
            execution.record("input.suspicious", patterns=suspicious, preview=text[:100])
        return PatternRun(self, execution)

    def capabilities(self, execution: PatternExecution) -> Capabilities:
        context = execution.context
        bind = {"context": context, "observer": execution.observer, "cancel": execution.cancel}
        return Capabilities(
            invoker=self.invoker.bind(**bind),
            settings=self.settings,
            observer=execution.observer,
            context=context,
            router=self.router.bind(**bind) if self.router is not None else None,
        )


class PatternRun:
    """One execution's frame stream. Iterate once.

    Example:
        >>> run = executor.open("Translate: good morning")
        >>> frames = await run.collect()
        >>> frames[-1].terminal
        True
    """

    __slots__ = ("executor", "execution", "_started")

    def __init__(self, executor: PatternExecutor, execution: PatternExecution) -> None:
        self.executor = executor
        self.execution = execution
        self._started = False

    @property
    def correlation_id(self) -> str:
        return self.execution.correlation_id

    def cancel(self, reason: str = "cancelled by caller") -> None:
        self.execution.cancel.cancel(reason)

    def __aiter__(self) -> AsyncIterator[StreamFrame]:
        if self._started:
            raise RuntimeError("PatternRun can only be iterated once")
        self._started = True
        return self._frames()

    async def collect(self) -> list[StreamFrame]:
        return [frame async for frame in self]

    async def _frames(self) -> AsyncIterator[StreamFrame]:
        execution, strategy = self.execution, self.executor.strategy
        emitter = FrameEmitter()
        start = time.perf_counter()
        execution.record("pattern.start", input_chars=len(execution.input), messages=len(execution.messages))
        snapshots = strategy.run(execution, self.executor.capabilities(execution))
        last: Any = _NOTHING
        finished = False
        try:
            async for snapshot in snapshots:
                execution.cancel.raise_if_cancelled()
                last = snapshot
                if (frame := emitter.offer(snapshot)) is not None:
                    yield frame
            if last is _NOTHING:
                raise SchemaViolation(f"{strategy.name} produced no result")
            final = conform(last, strategy.result_schema)
            finished = True
        except CancellationRequested as e:
            execution.record("pattern.cancelled", reason=e.message, frames=emitter.emitted)
            return
        except PatternError as e:
            execution.record("pattern.failed", code=e.code.value, error=e.message, frames=emitter.emitted,
                             duration_ms=_elapsed_ms(start))
            yield emitter.fail(Failure.from_exception(e))
            return
        except Exception as e:
            execution.record("pattern.error", error_type=type(e).__name__, error=str(e),
                             trace="".join(traceback.format_exception(e)))
            yield emitter.fail(Failure.from_exception(e, include_trace=self.executor.settings.debug))
            return
        finally:
            if not finished and not emitter.closed:
                execution.cancel.cancel("frame stream closed")
            if (aclose := getattr(snapshots, "aclose", None)) is not None:
                await aclose()
        execution.record("pattern.complete", frames=emitter.emitted + 1, duration_ms=_elapsed_ms(start),
                         iterations=len(execution.iterations), tool_calls=len(execution.tool_results))
        yield emitter.complete(final)


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)
