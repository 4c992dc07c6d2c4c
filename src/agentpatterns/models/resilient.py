"""Resilience wrapper around any ModelInvoker backend.

Adds, uniformly for every pattern:

- input checks (non-empty prompt)
- per-call timeout mapped to ProviderTimeout
- bounded exponential-backoff retry of transient provider failures
- strict schema conformance of structured results
- cooperative cancellation through the execution's CancelSignal
- timed start/complete/failed/retry events through the injected Observer

Streaming calls are retried only until the first delta arrives; once text
has been handed to the caller the stream cannot be replayed, so later
failures propagate. Each subsequent delta must arrive within
`stream_idle_timeout`.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Self, TypeVar, cast

import orjson

from agentpatterns.foundation.errors import (
    InputValidationError,
    PatternError,
    ProviderMalformedResponse,
    ProviderTimeout,
)
from agentpatterns.foundation.schema import SchemaSpec, conform
from agentpatterns.runtime.concurrency import CancelSignal, checkpoint, timeout_stream
from agentpatterns.runtime.observability import EMPTY_CONTEXT, EventContext, NoOpObserver, Observer
from agentpatterns.runtime.retry import RetryPolicy, execute_with_retry

from .invoker import ModelInvoker
from .types import CompletionStatus, GenerationRequest, GenerationResult, StructuredResult, TextResult

if TYPE_CHECKING:
    from agentpatterns.foundation.config import AgentPatternsSettings

T = TypeVar("T")

_END = object()


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


def parse_structured(text: str, schema: SchemaSpec) -> Any:
    """Parse a complete response text and strictly conform it to `schema`.

    Raises:
        ProviderMalformedResponse: text is not JSON
        SchemaViolation: JSON does not conform
    """
    try:
        value = orjson.loads(text)
    except orjson.JSONDecodeError as e:
        raise ProviderMalformedResponse(f"Response is not valid JSON: {e}",
                                        details={"preview": text[:200]}) from e
    return conform(value, schema)


async def _aclose(stream: object) -> None:
    if (aclose := getattr(stream, "aclose", None)) is not None:
        await aclose()


@dataclass(slots=True)
class ResilientInvoker:
    """ModelInvoker with timeout, retry, conformance, cancellation and events.

    One instance can be shared; `bind()` derives a per-execution copy carrying
    that execution's event context and cancel signal.

    Example:
        >>> invoker = ResilientInvoker(OpenAICompatibleInvoker.from_settings(settings.model))
        >>> value = await invoker.generate_structured(
        ...     GenerationRequest(ModelProfile.FAST, "Classify: ...", schema=CLASSIFICATION))
    """

    backend: ModelInvoker
    policy: RetryPolicy = field(default_factory=RetryPolicy)
    timeout: float | None = 60.0
    stream_idle_timeout: float | None = 30.0
    observer: Observer = field(default_factory=NoOpObserver)
    context: EventContext = EMPTY_CONTEXT
    cancel: CancelSignal | None = None

    @classmethod
    def from_settings(cls, backend: ModelInvoker, settings: AgentPatternsSettings,
                      observer: Observer | None = None) -> Self:
        return cls(
            backend=backend,
            policy=RetryPolicy.from_settings(settings.retry),
            timeout=settings.model.timeout,
            stream_idle_timeout=settings.model.stream_idle_timeout,
            observer=observer or NoOpObserver(),
        )

    def bind(self, *, context: EventContext | None = None, observer: Observer | None = None,
             cancel: CancelSignal | None = None) -> ResilientInvoker:
        return replace(self, context=context or self.context, observer=observer or self.observer,
                       cancel=cancel or self.cancel)

    # ─────────────────────────────────────────────────────────────────────
    # Blocking calls
    # ─────────────────────────────────────────────────────────────────────

    async def invoke(self, request: GenerationRequest) -> GenerationResult:
        self._check(request)
        attrs = self._request_attrs(request, "invoke")
        self._emit("model.call.start", attrs)
        start = time.perf_counter()
        try:
            result = await execute_with_retry(lambda: self._attempt(request), self.policy, on_retry=self._on_retry)
            if request.schema is not None:
                result = self._conform(result, request.schema)
        except PatternError as e:
            self._emit("model.call.failed", {**attrs, "duration_ms": _elapsed_ms(start), "code": e.code.value,
                                             "error": e.message})
            raise
        self._emit("model.call.complete", {**attrs, "duration_ms": _elapsed_ms(start), "status": result.status.value})
        return result

    async def generate_structured(self, request: GenerationRequest) -> Any:
        """Blocking structured call returning a value that strictly conforms to request.schema."""
        if request.schema is None:
            raise InputValidationError("generate_structured requires a request schema")
        # invoke conforms every schema-bearing result into a StructuredResult
        return cast(StructuredResult, await self.invoke(request)).value

    async def _attempt(self, request: GenerationRequest) -> GenerationResult:
        await checkpoint()
        return await self._guarded(self._timed(self.backend.invoke(request)))

    async def _timed(self, awaitable: Awaitable[T]) -> T:
        if self.timeout is None:
            return await awaitable
        try:
            async with asyncio.timeout(self.timeout):
                return await awaitable
        except TimeoutError as e:
            raise ProviderTimeout(f"Model call exceeded {self.timeout}s") from e

    async def _guarded(self, awaitable: Awaitable[T]) -> T:
        return await (self.cancel.guard(awaitable) if self.cancel else awaitable)

    def _conform(self, result: GenerationResult, schema: SchemaSpec) -> StructuredResult:
        if isinstance(result, TextResult):
            value = parse_structured(result.text, schema)
            return StructuredResult(value, schema, result.status, result.usage)
        return replace(result, value=conform(result.value, schema), schema=schema)

    # ─────────────────────────────────────────────────────────────────────
    # Streaming
    # ─────────────────────────────────────────────────────────────────────

    async def invoke_streaming(self, request: GenerationRequest) -> AsyncIterator[str]:
        """Raw text deltas, retried only before the first delta."""
        self._check(request)
        attrs = self._request_attrs(request, "stream")
        self._emit("model.call.start", attrs)
        start = time.perf_counter()
        attempt = 0
        while True:
            stream = self.backend.invoke_streaming(request)
            try:
                first = await self._guarded(self._timed(anext(stream, _END)))
                break
            except PatternError as e:
                await _aclose(stream)
                if not self.policy.should_retry(e.code, attempt):
                    self._emit("model.call.failed", {**attrs, "duration_ms": _elapsed_ms(start),
                                                     "code": e.code.value, "error": e.message})
                    raise
                delay = self.policy.get_delay(attempt, e)
                self._on_retry(attempt, e, delay)
                await asyncio.sleep(delay)
                attempt += 1

        deltas, chars = 0, 0
        rest: AsyncIterator[str] = stream
        if self.stream_idle_timeout is not None:
            idle = self.stream_idle_timeout
            rest = timeout_stream(rest, idle, on_timeout=lambda: ProviderTimeout(f"No stream delta for {idle}s"))
        if self.cancel is not None:
            rest = self.cancel.guard_stream(rest)
        try:
            if first is not _END:
                deltas, chars = 1, len(first)
                yield first
                async for delta in rest:
                    deltas, chars = deltas + 1, chars + len(delta)
                    yield delta
        except PatternError as e:
            self._emit("model.call.failed", {**attrs, "duration_ms": _elapsed_ms(start), "code": e.code.value,
                                             "error": e.message, "deltas": deltas})
            raise
        finally:
            if rest is not stream:
                await _aclose(rest)
            await _aclose(stream)
        self._emit("model.call.complete", {**attrs, "duration_ms": _elapsed_ms(start), "deltas": deltas,
                                           "chars": chars, "status": CompletionStatus.COMPLETE.value})

    # ─────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────

    @staticmethod
    def _check(request: GenerationRequest) -> None:
        if not request.prompt or not request.prompt.strip():
            raise InputValidationError("Generation request prompt must be non-empty")

    @staticmethod
    def _request_attrs(request: GenerationRequest, operation: str) -> dict[str, Any]:
        attrs: dict[str, Any] = {"operation": operation, "profile": request.profile.value,
                                 "prompt_chars": len(request.prompt)}
        if request.schema is not None:
            attrs["schema"] = request.schema.name
        if request.tools:
            attrs["tools"] = len(request.tools)
        return attrs

    def _emit(self, name: str, attributes: dict[str, Any]) -> None:
        self.observer.record_event(self.context, name, attributes)

    def _on_retry(self, attempt: int, error: PatternError, delay: float) -> None:
        self._emit("model.call.retry", {"attempt": attempt + 1, "max_retries": self.policy.max_retries,
                                        "delay": delay, "code": error.code.value, "error": error.message})

