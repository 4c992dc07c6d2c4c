"""Observer interface injected into every component that emits events.

`record_event(context, name, attributes)` is the single seam. The context is
the execution identity (correlation id, pattern name) so one observer
instance can serve many concurrent executions without global state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from agentpatterns.foundation.errors import JsonDict

from .logger import BoundLogger, get_logger


@dataclass(frozen=True, slots=True)
class EventContext:
    """Identity of the execution an event belongs to."""

    correlation_id: str = ""
    pattern: str = ""

    def as_dict(self) -> JsonDict:
        return {k: v for k, v in (("correlation_id", self.correlation_id), ("pattern", self.pattern)) if v}


EMPTY_CONTEXT = EventContext()


@runtime_checkable
class Observer(Protocol):
    """Receives structured events from the engine."""

    def record_event(self, context: EventContext, name: str, attributes: JsonDict) -> None: ...


# Events that indicate something went wrong get logged above info
_WARNING_SUFFIXES = (".retry", ".regression", ".suspicious", ".divergence", ".fallback")
_ERROR_SUFFIXES = (".failed", ".error", ".rejected")


def _level_for(name: str) -> int:
    if name.endswith(_ERROR_SUFFIXES):
        return logging.ERROR
    if name.endswith(_WARNING_SUFFIXES):
        return logging.WARNING
    if name.endswith((".delta", ".frame", ".checkpoint")):
        return logging.DEBUG
    return logging.INFO


@dataclass(slots=True)
class LoggingObserver:
    """Turns events into structured log lines via BoundLogger."""

    log: BoundLogger = field(default_factory=lambda: get_logger("agentpatterns"))

    def record_event(self, context: EventContext, name: str, attributes: JsonDict) -> None:
        self.log.log(_level_for(name), name, **{**context.as_dict(), **attributes})


@dataclass(slots=True)
class RecordedEvent:
    context: EventContext
    name: str
    attributes: JsonDict


@dataclass(slots=True)
class RecordingObserver:
    """Keeps every event in memory. Used by tests and debugging tools."""

    events: list[RecordedEvent] = field(default_factory=list)

    def record_event(self, context: EventContext, name: str, attributes: JsonDict) -> None:
        self.events.append(RecordedEvent(context, name, dict(attributes)))

    def names(self) -> list[str]:
        return [e.name for e in self.events]

    def named(self, name: str) -> list[RecordedEvent]:
        return [e for e in self.events if e.name == name]

    def clear(self) -> None:
        self.events.clear()


class NoOpObserver:
    __slots__ = ()

    def record_event(self, context: EventContext, name: str, attributes: JsonDict) -> None:
        pass


@dataclass(slots=True)
class FanOutObserver:
    """Forwards every event to several observers."""

    observers: tuple[Observer, ...] = ()

    def record_event(self, context: EventContext, name: str, attributes: JsonDict) -> None:
        for obs in self.observers:
            obs.record_event(context, name, attributes)
