"""Wire adapters turning StreamFrames into response bytes.

- PrefixTextAdapter: the concatenation of everything written is the final
  JSON document, and every prefix of it is a partial serialization a client
  StreamReconciler can parse. This is the default HTTP wire format.
- NDJSONAdapter: one complete frame object per line, including typed failure
  markers. For clients that want frames rather than text.

Adapters are stateful: create one per response.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

import orjson

from agentpatterns.runtime.observability import EMPTY_CONTEXT, EventContext, NoOpObserver, Observer

from .codec import get_codec
from .frame import StreamFrame
from .partial import open_serialization


@runtime_checkable
class WireAdapter(Protocol):
    """Protocol for per-response frame encoders."""

    media_type: str

    def write(self, frame: StreamFrame) -> bytes: ...


# ─────────────────────────────────────────────────────────────────────────────
# Prefix-consistent JSON text
# ─────────────────────────────────────────────────────────────────────────────


class PrefixTextAdapter:
    """Writes only the new suffix of each frame's open serialization.

    When a progress frame's serialization does not extend what was already
    written (a regressing generator), nothing is written for it and a
    `wire.divergence` event is recorded; later frames that extend the written
    text resume output. A failed terminal frame writes nothing more, so the
    client observes an incomplete document.
    """

    __slots__ = ("_sent", "_observer", "_context")
    media_type = "text/plain; charset=utf-8"

    def __init__(self, observer: Observer | None = None, context: EventContext = EMPTY_CONTEXT) -> None:
        self._sent = ""
        self._observer = observer or NoOpObserver()
        self._context = context

    @property
    def sent(self) -> str:
        return self._sent

    def write(self, frame: StreamFrame) -> bytes:
        if frame.terminal and not frame.ok:
            return b""
        text = orjson.dumps(frame.payload).decode() if frame.terminal else open_serialization(frame.payload)
        if not text.startswith(self._sent):
            self._observer.record_event(self._context, "wire.divergence",
                                        {"sequence": frame.sequence, "sent_chars": len(self._sent)})
            return b""
        suffix, self._sent = text[len(self._sent):], text
        return suffix.encode()


# ─────────────────────────────────────────────────────────────────────────────
# Newline-delimited frames
# ─────────────────────────────────────────────────────────────────────────────


class NDJSONAdapter:
    """Each frame as one JSON line."""

    __slots__ = ()
    media_type = "application/x-ndjson"

    def write(self, frame: StreamFrame) -> bytes:
        return get_codec().encode_line(frame.to_dict())


# ─────────────────────────────────────────────────────────────────────────────
# Stream transform helper
# ─────────────────────────────────────────────────────────────────────────────


async def encode_frames(frames: AsyncIterator[StreamFrame], adapter: WireAdapter) -> AsyncIterator[bytes]:
    """Encode a frame stream, skipping frames that produce no bytes.

    Example:
        >>> async for chunk in encode_frames(run, PrefixTextAdapter()):
        ...     await send(chunk)
    """
    async for frame in frames:
        if data := adapter.write(frame):
            yield data
