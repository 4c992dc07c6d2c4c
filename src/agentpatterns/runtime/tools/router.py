"""Dispatch of model-requested tool calls to registered handlers.

The router is the only place tool handlers run. Every call:

- resolves the tool by name (unknown -> NOT_FOUND result)
- strictly validates the arguments against the tool's parameter schema
- hands the handler its own deep copy of the arguments
- runs sync handlers in a worker thread, async ones on the loop
- bounds each attempt with a timeout (ToolTimeout, retryable per policy)
- races the call against the execution's cancel signal

Failures come back as ToolCallResults carrying a Failure marker so the
generating loop can react. Only cancellation propagates.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import time
import uuid
from collections.abc import Awaitable, Callable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Self

import orjson

from agentpatterns.foundation.errors import (
    CancellationRequested,
    ErrorCode,
    Failure,
    JsonDict,
    PatternError,
    SchemaViolation,
    ToolArgumentsInvalid,
    ToolExecutionError,
    ToolNotFound,
    ToolTimeout,
)
from agentpatterns.foundation.schema import SchemaSpec, conform
from agentpatterns.models.types import Message, Role, ToolSpec
from agentpatterns.runtime.concurrency import CancelSignal, TaskGroup, checkpoint, to_thread
from agentpatterns.runtime.observability import EMPTY_CONTEXT, EventContext, NoOpObserver, Observer
from agentpatterns.runtime.retry import ExponentialBackoff, RetryPolicy, execute_with_retry

if TYPE_CHECKING:
    from agentpatterns.foundation.config import ToolSettings

Handler = Callable[[JsonDict], Any] | Callable[[JsonDict], Awaitable[Any]]


def _call_id() -> str:
    return f"call_{uuid.uuid4().hex[:12]}"


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


# ─────────────────────────────────────────────────────────────────────────────
# Types
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ToolDescriptor:
    """A registered tool.

    Attributes:
        name: Unique name the model uses to request the tool
        description: What the tool does (shown to the model)
        parameters: Shape of the argument object
        handler: Callable taking the validated argument dict; sync or async
        timeout: Per-tool override of the router timeout
    """

    name: str
    description: str
    parameters: SchemaSpec
    handler: Handler = field(repr=False, compare=False)
    timeout: float | None = None

    def to_spec(self) -> ToolSpec:
        return ToolSpec(self.name, self.description, self.parameters.to_json_schema())


@dataclass(frozen=True, slots=True)
class ToolCallRequest:
    name: str
    arguments: JsonDict = field(default_factory=dict)
    call_id: str = field(default_factory=_call_id)


@dataclass(frozen=True, slots=True)
class ToolCallResult:
    """Outcome of one dispatch: `payload` on success, `error` otherwise."""

    call_id: str
    name: str
    payload: Any = None
    error: Failure | None = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> JsonDict:
        out: JsonDict = {"call_id": self.call_id, "name": self.name, "ok": self.ok}
        if self.error is None:
            out["result"] = self.payload
        else:
            out["error"] = {"code": self.error.code.value, "message": self.error.message}
        return out

    def to_message(self) -> Message:
        """Conversation turn re-injecting this result for the next model step."""
        return Message(Role.TOOL, orjson.dumps(self.to_dict(), default=str).decode(), name=self.name)


def tool(
    name: str,
    description: str,
    parameters: SchemaSpec,
    *,
    timeout: float | None = None,
) -> Callable[[Handler], ToolDescriptor]:
    """Decorator turning a handler function into a ToolDescriptor.

    Example:
        >>> @tool("lookup", "Find an order by id", schema("lookup", field("order_id", string())))
        ... async def lookup(args):
        ...     return await orders.get(args["order_id"])
        >>> router.register(lookup)
    """
    def decorator(handler: Handler) -> ToolDescriptor:
        return ToolDescriptor(name, description, parameters, handler, timeout)
    return decorator


# ─────────────────────────────────────────────────────────────────────────────
# Router
# ─────────────────────────────────────────────────────────────────────────────


class ToolInvocationRouter:
    """Registry and dispatcher for tools available to an executor.

    One router is built per executor; `bind()` derives the per-execution view
    carrying that execution's event context and cancel signal while sharing
    the registered tools.

    Example:
        >>> router = ToolInvocationRouter(timeout=5.0)
        >>> router.register(calculator())
        >>> result = await router.dispatch(ToolCallRequest("calculate", {"expression": "2+2"}))
        >>> result.payload
        {'result': '4'}
    """

    __slots__ = ("_tools", "timeout", "policy", "_observer", "_context", "_cancel")

    def __init__(
        self,
        *,
        timeout: float | None = 10.0,
        policy: RetryPolicy | None = None,
        observer: Observer | None = None,
        context: EventContext = EMPTY_CONTEXT,
        cancel: CancelSignal | None = None,
        tools: dict[str, ToolDescriptor] | None = None,
    ) -> None:
        self._tools: dict[str, ToolDescriptor] = tools if tools is not None else {}
        self.timeout = timeout
        self.policy = policy or RetryPolicy(max_retries=0, retryable_codes=frozenset({ErrorCode.TIMEOUT}))
        self._observer = observer or NoOpObserver()
        self._context = context
        self._cancel = cancel

    @classmethod
    def from_settings(cls, settings: ToolSettings, observer: Observer | None = None) -> Self:
        policy = RetryPolicy(
            max_retries=settings.max_retries,
            backoff=ExponentialBackoff(base=0.5, max_delay=5.0),
            retryable_codes=frozenset({ErrorCode.TIMEOUT}),
        )
        return cls(timeout=settings.timeout, policy=policy, observer=observer)

    def bind(self, *, context: EventContext | None = None, observer: Observer | None = None,
             cancel: CancelSignal | None = None) -> ToolInvocationRouter:
        return ToolInvocationRouter(
            timeout=self.timeout,
            policy=self.policy,
            observer=observer or self._observer,
            context=context or self._context,
            cancel=cancel or self._cancel,
            tools=self._tools,
        )

    # ─────────────────────────────────────────────────────────────────
    # Registration
    # ─────────────────────────────────────────────────────────────────

    def register(self, descriptor: ToolDescriptor) -> None:
        """Register a tool.

        Raises:
            ValueError: a tool with the same name is already registered
        """
        if descriptor.name in self._tools:
            raise ValueError(f"Tool '{descriptor.name}' already registered")
        self._tools[descriptor.name] = descriptor

    def get(self, name: str) -> ToolDescriptor | None:
        return self._tools.get(name)

    def specs(self) -> tuple[ToolSpec, ...]:
        """Declarations offered to the model."""
        return tuple(t.to_spec() for t in self._tools.values())

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[ToolDescriptor]:
        return iter(self._tools.values())

    # ─────────────────────────────────────────────────────────────────
    # Dispatch
    # ─────────────────────────────────────────────────────────────────

    async def dispatch(self, request: ToolCallRequest) -> ToolCallResult:
        """Run one tool call; never raises except CancellationRequested."""
        attrs: JsonDict = {"tool": request.name, "call_id": request.call_id}
        self._emit("tool.call.start", attrs)
        start = time.perf_counter()
        try:
            if (descriptor := self._tools.get(request.name)) is None:
                raise ToolNotFound(f"Tool '{request.name}' not found",
                                   details={"available": sorted(self._tools)})
            try:
                arguments = conform(request.arguments, descriptor.parameters)
            except SchemaViolation as e:
                raise ToolArgumentsInvalid(f"Invalid arguments for '{request.name}': {e.violations[0]}",
                                           violations=e.violations) from e
            payload = await execute_with_retry(
                lambda: self._attempt(descriptor, arguments),
                self.policy,
                on_retry=lambda attempt, err, delay: self._emit(
                    "tool.call.retry", {**attrs, "attempt": attempt + 1, "delay": delay, "code": err.code.value}),
            )
        except CancellationRequested:
            raise
        except PatternError as e:
            duration = _elapsed_ms(start)
            self._emit("tool.call.failed", {**attrs, "duration_ms": duration, "code": e.code.value, "error": e.message})
            return ToolCallResult(request.call_id, request.name, error=Failure.from_exception(e, tool=request.name),
                                  duration_ms=duration)
        duration = _elapsed_ms(start)
        self._emit("tool.call.complete", {**attrs, "duration_ms": duration})
        return ToolCallResult(request.call_id, request.name, payload=payload, duration_ms=duration)

    async def dispatch_many(self, requests: Sequence[ToolCallRequest]) -> list[ToolCallResult]:
        """Dispatch concurrently; results are in request order."""
        if not requests:
            return []
        async with TaskGroup() as tg:
            handles = [tg.spawn(self.dispatch(r), name=r.call_id) for r in requests]
        return [h.result() for h in handles]

    async def _attempt(self, descriptor: ToolDescriptor, arguments: JsonDict) -> Any:
        await checkpoint()
        args = copy.deepcopy(arguments)
        if inspect.iscoroutinefunction(descriptor.handler):
            call: Awaitable[Any] = descriptor.handler(args)
        else:
            call = to_thread(descriptor.handler, args)
        if self._cancel is not None:
            call = self._cancel.guard(call)
        timeout = descriptor.timeout if descriptor.timeout is not None else self.timeout
        try:
            async with asyncio.timeout(timeout):
                return await call
        except TimeoutError as e:
            raise ToolTimeout(f"Tool '{descriptor.name}' exceeded {timeout}s", details={"tool": descriptor.name}) from e
        except PatternError:
            raise
        except Exception as e:
            raise ToolExecutionError(f"Tool '{descriptor.name}' failed: {e}",
                                     details={"tool": descriptor.name, "error_type": type(e).__name__}) from e

    def _emit(self, name: str, attributes: JsonDict) -> None:
        self._observer.record_event(self._context, name, attributes)
