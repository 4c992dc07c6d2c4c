"""Structured logging for pattern executions.

Every log line is an event name plus key/value context. Lines that carry an
execution identity (``pattern`` and ``correlation_id``) are prefixed with it on
the console so one run can be followed through interleaved output. JSON lines
keep the identity as ordinary fields for log aggregation.

Quick Start:
    >>> from agentpatterns.runtime.observability import configure_logging, get_logger
    >>> configure_logging(format="console")
    >>> log = get_logger("patterns").bind(correlation_id="3f2a", pattern="routing")
    >>> log.info("model.call.complete", duration_ms=412.3)
    # => 10:30:45.120 [info] routing/3f2a model.call.complete duration_ms=412.3 logger="patterns"
"""

from __future__ import annotations

import logging
import sys
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol, TextIO, runtime_checkable

import orjson

from agentpatterns.foundation.errors import JsonDict, JsonValue

_IDENTITY = ("pattern", "correlation_id")


@dataclass(slots=True)
class LogEntry:
    timestamp: float
    level: str
    event: str
    context: JsonDict

    @property
    def identity(self) -> str | None:
        """``pattern/correlation_id`` when both are bound."""
        pattern, correlation_id = (self.context.get(k) for k in _IDENTITY)
        return f"{pattern}/{correlation_id}" if pattern and correlation_id else None


@dataclass(slots=True)
class BoundLogger:
    """Logger with bound context. bind() returns a new logger with merged context.

    Without an explicit level or renderer the logger follows configure_logging,
    including calls made after the logger was created.
    """

    context: JsonDict = field(default_factory=dict)
    _renderer: LogRenderer | None = None
    _level: int | None = None

    def bind(self, **kw: JsonValue) -> BoundLogger:
        return BoundLogger(context={**self.context, **kw}, _renderer=self._renderer, _level=self._level)

    def log(self, level: int, event: str, /, **kw: JsonValue) -> None:
        if level < (self._level if self._level is not None else _config.level):
            return
        renderer = self._renderer or _config.renderer
        renderer.render(LogEntry(time.time(), logging.getLevelName(level).lower(), event, {**self.context, **kw}))

    def debug(self, event: str, /, **kw: JsonValue) -> None: self.log(logging.DEBUG, event, **kw)
    def info(self, event: str, /, **kw: JsonValue) -> None: self.log(logging.INFO, event, **kw)
    def warning(self, event: str, /, **kw: JsonValue) -> None: self.log(logging.WARNING, event, **kw)
    def error(self, event: str, /, **kw: JsonValue) -> None: self.log(logging.ERROR, event, **kw)


# ─────────────────────────────────────────────────────────────────────────────
# Renderers
# ─────────────────────────────────────────────────────────────────────────────


@runtime_checkable
class LogRenderer(Protocol):
    def render(self, entry: LogEntry) -> None: ...


@dataclass(slots=True)
class ConsoleRenderer:
    """Format: timestamp [level] pattern/correlation_id event key=value ..."""

    output: TextIO = field(default_factory=lambda: sys.stderr)
    colors: bool | None = None  # None = auto-detect
    show_timestamp: bool = True

    def __post_init__(self) -> None:
        if self.colors is None:
            self.colors = getattr(self.output, "isatty", lambda: False)()

    def _paint(self, text: str, color: str) -> str:
        return f"{color}{text}{_RESET}" if self.colors else text

    def render(self, entry: LogEntry) -> None:
        parts = [self._paint(_human_time(entry.timestamp), _DIM)] if self.show_timestamp else []
        parts.append(self._paint(f"[{entry.level}]", _LEVEL_COLORS.get(entry.level, _DIM)))
        if (identity := entry.identity) is not None:
            parts.append(self._paint(identity, _DIM))
        parts.append(self._paint(entry.event, _BOLD))
        hidden = _IDENTITY if identity is not None else ()
        parts += [f"{self._paint(k, _CYAN)}={_format_value(v)}"
                  for k, v in sorted(entry.context.items()) if k not in hidden]
        print(" ".join(parts), file=self.output)


@dataclass(slots=True)
class JsonRenderer:
    """JSON Lines output for log aggregation."""

    output: TextIO = field(default_factory=lambda: sys.stdout)

    def render(self, entry: LogEntry) -> None:
        stamp = datetime.fromtimestamp(entry.timestamp, tz=UTC).isoformat()
        line = orjson.dumps({"timestamp": stamp, "level": entry.level, "event": entry.event, **entry.context},
                            default=str)
        print(line.decode(), file=self.output)


@dataclass(slots=True)
class NoOpRenderer:
    def render(self, entry: LogEntry) -> None:
        pass


@dataclass(slots=True)
class CollectingRenderer:
    """Keeps entries in memory; tests assert on them."""

    entries: list[LogEntry] = field(default_factory=list)

    def render(self, entry: LogEntry) -> None:
        self.entries.append(entry)

    def events(self) -> list[str]:
        return [e.event for e in self.entries]


# ─────────────────────────────────────────────────────────────────────────────
# Configuration
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(slots=True)
class _LogConfig:
    renderer: LogRenderer = field(default_factory=ConsoleRenderer)
    level: int = logging.INFO


_config = _LogConfig()


def configure_logging(
    format: str = "console",  # noqa: A002 - matches LoggingSettings.format
    level: str = "INFO",
    *,
    output: TextIO | None = None,
    colors: bool | None = None,
) -> LogRenderer:
    """Configure process-wide logging. Format: "console" (human), "json" (machine), "none"."""
    match format:
        case "console": renderer: LogRenderer = ConsoleRenderer(output=output or sys.stderr, colors=colors)
        case "json": renderer = JsonRenderer(output=output or sys.stdout)
        case "none": renderer = NoOpRenderer()
        case _: raise ValueError(f"Unknown format: {format}. Use 'console', 'json', or 'none'")
    _config.renderer = renderer
    _config.level = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)
    return renderer


def get_logger(name: str | None = None, *, renderer: LogRenderer | None = None) -> BoundLogger:
    """Get a structured logger. Name is added to context as 'logger'."""
    return BoundLogger(context={"logger": name} if name else {}, _renderer=renderer)


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────


_RESET, _BOLD, _DIM, _CYAN = "\033[0m", "\033[1m", "\033[2m", "\033[36m"
_LEVEL_COLORS = {"debug": _DIM, "info": "\033[32m", "warning": "\033[33m", "error": "\033[31m"}


def _human_time(timestamp: float) -> str:
    """HH:MM:SS.mmm"""
    return datetime.fromtimestamp(timestamp, tz=UTC).strftime("%H:%M:%S.%f")[:-3]


def _format_value(v: object) -> str:
    match v:
        case str(): return f'"{v}"'
        case bool(): return str(v).lower()
        case dict(): return f"{{{len(v)} items}}"
        case list() | tuple(): return f"[{len(v)} items]"
        case _: return str(v)
