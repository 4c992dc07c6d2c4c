"""Structured logging and the injected observer interface."""

from .events import (
    EMPTY_CONTEXT,
    EventContext,
    FanOutObserver,
    LoggingObserver,
    NoOpObserver,
    Observer,
    RecordedEvent,
    RecordingObserver,
)
from .logger import (
    BoundLogger,
    CollectingRenderer,
    ConsoleRenderer,
    JsonRenderer,
    LogEntry,
    LogRenderer,
    NoOpRenderer,
    configure_logging,
    get_logger,
)

__all__ = [
    "Observer", "EventContext", "EMPTY_CONTEXT", "LoggingObserver", "RecordingObserver", "RecordedEvent",
    "NoOpObserver", "FanOutObserver",
    "BoundLogger", "LogEntry", "LogRenderer", "ConsoleRenderer", "JsonRenderer", "NoOpRenderer",
    "CollectingRenderer", "configure_logging", "get_logger",
]
