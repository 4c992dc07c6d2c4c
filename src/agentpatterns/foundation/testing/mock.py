"""Scripted model backend for pattern testing.

Provides ScriptedInvoker for:
- Replacing the model with queued, deterministic responses
- Simulating provider failures, slow calls and truncated streams
- Recording every request for verification
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

import orjson

from agentpatterns.models.types import GenerationRequest, GenerationResult, StructuredResult, TextResult


@dataclass(slots=True)
class Reply:
    """A scripted response with optional latency.

    `value` may be a JSON-able value, a string, an exception (instance or
    class) to raise, or a callable taking the request and returning one of
    those.
    """

    value: Any = None
    delay: float = 0.0


@dataclass(slots=True)
class Stream:
    """A scripted streaming response.

    Attributes:
        chunks: Raw text deltas, in order
        raises: Exception raised after the chunks (simulates a dropped stream)
        delay: Seconds between deltas
    """

    chunks: list[str]
    raises: BaseException | None = None
    delay: float = 0.0

    @classmethod
    def of(cls, value: Any, size: int = 8, **kw: Any) -> Stream:
        """Serialize `value` and split it into `size`-character deltas."""
        text = value if isinstance(value, str) else orjson.dumps(value).decode()
        return cls([text[i:i + size] for i in range(0, len(text), size)] or [""], **kw)


@dataclass(slots=True)
class Invocation:
    """Record of a single model call."""
    request: GenerationRequest
    streaming: bool

    @property
    def schema_name(self) -> str | None:
        return self.request.schema.name if self.request.schema else None


def _is_exc(v: object) -> bool:
    return isinstance(v, BaseException) or (isinstance(v, type) and issubclass(v, BaseException))


@dataclass
class ScriptedInvoker:
    """Deterministic ModelInvoker fed from response queues.

    Responses are taken from the queue registered for the request's schema
    name (see `on`) when one exists and is non-empty, otherwise from the
    shared queue (see `push`). Keyed queues keep concurrent branches
    deterministic.

    Example:
        >>> model = ScriptedInvoker()
        >>> model.on("classification", {"category": "billing", "complexity": "simple", "reasoning": "refund"})
        >>> model.push(Stream.of({"response": "Refund issued."}))
        >>> model.call_count
        0
    """

    invocations: list[Invocation] = field(default_factory=list)
    _queue: deque[Any] = field(default_factory=deque)
    _keyed: dict[str, deque[Any]] = field(default_factory=dict)

    def push(self, *responses: Any) -> ScriptedInvoker:
        self._queue.extend(responses)
        return self

    def on(self, schema_name: str, *responses: Any) -> ScriptedInvoker:
        self._keyed.setdefault(schema_name, deque()).extend(responses)
        return self

    @property
    def remaining(self) -> int:
        return len(self._queue) + sum(len(q) for q in self._keyed.values())

    @property
    def call_count(self) -> int:
        return len(self.invocations)

    @property
    def called(self) -> bool:
        return self.call_count > 0

    @property
    def last_call(self) -> Invocation | None:
        return self.invocations[-1] if self.invocations else None

    def calls_for(self, schema_name: str | None) -> list[Invocation]:
        return [i for i in self.invocations if i.schema_name == schema_name]

    def assert_not_called(self) -> None:
        if self.called:
            raise AssertionError(f"Model called {self.call_count} times")

    def assert_prompt_contains(self, text: str) -> None:
        if not self.called:
            raise AssertionError("Expected model to be called")
        last = self.last_call
        assert last is not None
        if text not in last.request.prompt:
            raise AssertionError(f"{text!r} not in last prompt: {last.request.prompt[:200]!r}")

    # ─────────────────────────────────────────────────────────────────────
    # ModelInvoker
    # ─────────────────────────────────────────────────────────────────────

    def _next(self, request: GenerationRequest) -> Any:
        key = request.schema.name if request.schema else None
        if key is not None and (q := self._keyed.get(key)):
            item = q.popleft()
        elif self._queue:
            item = self._queue.popleft()
        else:
            raise AssertionError(f"No scripted response left for request (schema={key!r})")
        return item(request) if callable(item) and not _is_exc(item) else item

    @staticmethod
    def _raise(v: Any) -> None:
        raise v() if isinstance(v, type) else v

    async def invoke(self, request: GenerationRequest) -> GenerationResult:
        self.invocations.append(Invocation(request, streaming=False))
        item = self._next(request)
        if isinstance(item, Reply):
            await asyncio.sleep(item.delay)
            item = item.value(request) if callable(item.value) and not _is_exc(item.value) else item.value
        if _is_exc(item):
            self._raise(item)
        if isinstance(item, Stream):
            for _ in item.chunks:
                await asyncio.sleep(item.delay)
            if item.raises is not None:
                raise item.raises
            item = "".join(item.chunks)
        if isinstance(item, str):
            return TextResult(item)
        if request.schema is not None:
            return StructuredResult(item, request.schema)
        return TextResult(orjson.dumps(item).decode())

    async def invoke_streaming(self, request: GenerationRequest) -> AsyncIterator[str]:
        self.invocations.append(Invocation(request, streaming=True))
        item = self._next(request)
        if isinstance(item, Reply):
            await asyncio.sleep(item.delay)
            item = item.value(request) if callable(item.value) and not _is_exc(item.value) else item.value
        if _is_exc(item):
            self._raise(item)
        if not isinstance(item, Stream):
            item = Stream.of(item)
        for chunk in item.chunks:
            if item.delay:
                await asyncio.sleep(item.delay)
            yield chunk
        if item.raises is not None:
            raise item.raises
