"""Stream frames and the emitter that numbers them.

Frame sequence invariants:
- sequence numbers are 0, 1, 2, ... without gaps
- exactly one frame is terminal, and it is the last one
- no two consecutive frames carry structurally equal payloads

The emitter holds the most recent snapshot back until it is superseded by a
different one. A snapshot is therefore emitted as a progress frame only if
something newer follows; the terminal frame absorbs whatever was still
staged. A stream whose last progress value equals the final value never
repeats it, and a stream that is complete after one step produces a single
terminal frame.
"""

from __future__ import annotations

import copy
import time
from dataclasses import dataclass, field
from typing import Any

from agentpatterns.foundation.errors import Failure, JsonDict

from .diff import same

_NOTHING: Any = object()


@dataclass(frozen=True, slots=True)
class StreamFrame:
    """One observable unit of progress.

    Attributes:
        sequence: Position in the execution's frame sequence (from 0)
        payload: Best-effort partial value, or the final value when terminal
        terminal: Whether this is the last frame
        failure: Failure marker on a failed terminal frame
        timestamp: Emission time (epoch seconds)
    """

    sequence: int
    payload: Any
    terminal: bool = False
    failure: Failure | None = None
    timestamp: float = field(default_factory=time.time)

    @property
    def ok(self) -> bool:
        return self.failure is None

    def to_dict(self) -> JsonDict:
        return {
            "sequence": self.sequence,
            "payload": self.payload,
            "terminal": self.terminal,
            "failure": self.failure.to_dict() if self.failure else None,
        }


class FrameEmitter:
    """Numbers frames and enforces the sequence invariants."""

    __slots__ = ("_next", "_staged", "_last", "_closed")

    def __init__(self) -> None:
        self._next = 0
        self._staged: Any = _NOTHING
        self._last: Any = _NOTHING
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def emitted(self) -> int:
        return self._next

    @property
    def latest(self) -> Any:
        """Most recent snapshot (staged or emitted), or None."""
        if self._staged is not _NOTHING:
            return self._staged
        return None if self._last is _NOTHING else self._last

    def _frame(self, payload: Any, *, terminal: bool = False, failure: Failure | None = None) -> StreamFrame:
        frame = StreamFrame(self._next, payload, terminal, failure)
        self._next += 1
        self._last = payload
        return frame

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("Frame sequence already terminated")

    def offer(self, payload: Any) -> StreamFrame | None:
        """Stage a snapshot; returns the previously staged one if this one differs."""
        self._check_open()
        current = self._staged if self._staged is not _NOTHING else self._last
        if current is not _NOTHING and same(current, payload):
            return None
        if current is _NOTHING and payload in ({}, [], None):
            return None
        released = None
        if self._staged is not _NOTHING:
            released = self._frame(self._staged)
        self._staged = copy.deepcopy(payload)
        return released

    def complete(self, final: Any) -> StreamFrame:
        self._check_open()
        self._closed = True
        self._staged = _NOTHING
        return self._frame(copy.deepcopy(final), terminal=True)

    def fail(self, failure: Failure) -> StreamFrame:
        """Terminal failure frame carrying the latest known partial value."""
        self._check_open()
        payload = self.latest
        self._closed = True
        self._staged = _NOTHING
        return self._frame(payload, terminal=True, failure=failure)
