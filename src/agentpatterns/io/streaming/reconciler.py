"""Incremental reconstruction of a schema-typed value from streamed text.

The reconciler keeps an append-only buffer. After every delta it attempts a
repairing parse of the whole buffer; an unparseable buffer is the normal
mid-stream case and produces nothing. A parsed value is validated in partial
mode and, when it differs structurally from the previous one, handed to a
FrameEmitter. On completion the buffer is parsed and validated strictly.

Example:
    >>> rec = StreamReconciler(schema("answer", field("title", string())))
    >>> rec.feed('{"tit') is None
    True
    >>> rec.feed('le":"Hi"}') is None
    True
    >>> frame = rec.complete()
    >>> frame.sequence, frame.payload, frame.terminal
    (0, {'title': 'Hi'}, True)
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import orjson

from agentpatterns.foundation.errors import (
    CancellationRequested,
    Failure,
    PatternError,
    SchemaViolation,
)
from agentpatterns.foundation.schema import SchemaSpec, conform
from agentpatterns.runtime.observability import EMPTY_CONTEXT, EventContext, NoOpObserver, Observer

from .diff import regressions, same
from .frame import FrameEmitter, StreamFrame
from .partial import UNPARSEABLE, parse_partial


class StreamReconciler:
    """Turns raw text deltas into validated StreamFrames.

    Args:
        schema: Shape of the final value
        observer: Receives `reconciler.regression` events
        context: Execution identity attached to events

    Attributes:
        regressions: Every retraction observed between successive partial
            values, as human-readable paths. Regressions are emitted as-is;
            they are recorded, not suppressed.
    """

    __slots__ = ("schema", "regressions", "_buffer", "_value", "_emitter", "_observer", "_context")

    def __init__(
        self,
        schema: SchemaSpec,
        *,
        observer: Observer | None = None,
        context: EventContext = EMPTY_CONTEXT,
    ) -> None:
        self.schema = schema
        self.regressions: list[str] = []
        self._buffer: list[str] = []
        self._value: Any = UNPARSEABLE
        self._emitter = FrameEmitter()
        self._observer = observer or NoOpObserver()
        self._context = context

    @property
    def text(self) -> str:
        return "".join(self._buffer)

    @property
    def value(self) -> Any:
        """Latest accepted partial value, or None before the first one."""
        return None if self._value is UNPARSEABLE else self._value

    @property
    def closed(self) -> bool:
        return self._emitter.closed

    # ─────────────────────────────────────────────────────────────────────
    # Value level
    # ─────────────────────────────────────────────────────────────────────

    def advance(self, delta: str) -> Any:
        """Append `delta`; return the new partial value if it changed, else UNPARSEABLE."""
        if delta:
            self._buffer.append(delta)
        parsed = parse_partial(self.text)
        if parsed is UNPARSEABLE:
            return UNPARSEABLE
        try:
            value = conform(parsed, self.schema, partial=True)
        except SchemaViolation:
            return UNPARSEABLE
        if self._value is not UNPARSEABLE:
            if same(self._value, value):
                return UNPARSEABLE
            if found := regressions(self._value, value):
                self.regressions.extend(found)
                self._observer.record_event(self._context, "reconciler.regression",
                                            {"schema": self.schema.name, "paths": found})
        self._value = value
        return value

    def final_value(self) -> Any:
        """Strictly parse and validate the complete buffer.

        Raises:
            SchemaViolation: the text is not a complete JSON document, or the
                document does not conform to the schema
        """
        text = self.text
        try:
            parsed = orjson.loads(text)
        except orjson.JSONDecodeError as e:
            raise SchemaViolation(f"{self.schema.name}: incomplete JSON document",
                                  details={"schema": self.schema.name, "received_chars": len(text)}) from e
        return conform(parsed, self.schema)

    async def stream_values(self, deltas: AsyncIterator[str]) -> AsyncIterator[Any]:
        """Yield each materially different partial value as deltas arrive."""
        async for delta in deltas:
            if (value := self.advance(delta)) is not UNPARSEABLE:
                yield value

    # ─────────────────────────────────────────────────────────────────────
    # Frame level
    # ─────────────────────────────────────────────────────────────────────

    def feed(self, delta: str) -> StreamFrame | None:
        value = self.advance(delta)
        return None if value is UNPARSEABLE else self._emitter.offer(value)

    def complete(self) -> StreamFrame:
        """Terminal frame: the final value, or a SchemaViolation marker."""
        try:
            final = self.final_value()
        except SchemaViolation as e:
            return self._emitter.fail(Failure.from_exception(e))
        return self._emitter.complete(final)

    def fail(self, exc: BaseException) -> StreamFrame:
        return self._emitter.fail(Failure.from_exception(exc))

    async def reconcile(self, deltas: AsyncIterator[str]) -> AsyncIterator[StreamFrame]:
        """Consume `deltas` to the end and yield every frame, terminal last.

        Upstream PatternErrors become a terminal failure frame. Cancellation
        propagates without a frame.
        """
        try:
            async for delta in deltas:
                if (frame := self.feed(delta)) is not None:
                    yield frame
        except CancellationRequested:
            raise
        except PatternError as e:
            yield self.fail(e)
            return
        yield self.complete()
