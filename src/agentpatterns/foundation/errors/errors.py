"""Error taxonomy for pattern executions.

Every failure the engine knows about is a `PatternError` subclass carrying a
machine-readable `ErrorCode` and a `recoverable` flag that drives retry
decisions. `Failure` is the frozen, serializable marker that terminal stream
frames and tool results carry instead of a live exception.
"""

from __future__ import annotations

import traceback
from datetime import datetime, timezone
from enum import StrEnum
from functools import lru_cache
from typing import Annotated, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .types import JsonDict


class ErrorCode(StrEnum):
    """Standard error codes for pattern, provider and tool failures."""
    INVALID_INPUT = "INVALID_INPUT"
    TIMEOUT = "TIMEOUT"
    RATE_LIMITED = "RATE_LIMITED"
    NETWORK_ERROR = "NETWORK_ERROR"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    REQUEST_REJECTED = "REQUEST_REJECTED"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"
    SCHEMA_VIOLATION = "SCHEMA_VIOLATION"
    INVALID_PARAMS = "INVALID_PARAMS"
    TOOL_ERROR = "TOOL_ERROR"
    NOT_FOUND = "NOT_FOUND"
    INVALID_PLAN = "INVALID_PLAN"
    STEP_LIMIT = "STEP_LIMIT"
    CANCELLED = "CANCELLED"
    UNKNOWN = "UNKNOWN"


# Transient codes: a retry may succeed
RETRYABLE_CODES: frozenset[ErrorCode] = frozenset({
    ErrorCode.TIMEOUT,
    ErrorCode.RATE_LIMITED,
    ErrorCode.NETWORK_ERROR,
    ErrorCode.EXTERNAL_SERVICE_ERROR,
})

_PATTERN_CODES: dict[str, ErrorCode] = {
    "timeout": ErrorCode.TIMEOUT,
    "connection": ErrorCode.NETWORK_ERROR,
    "network": ErrorCode.NETWORK_ERROR,
    "rate": ErrorCode.RATE_LIMITED,
    "json": ErrorCode.MALFORMED_RESPONSE,
    "decode": ErrorCode.MALFORMED_RESPONSE,
    "validation": ErrorCode.INVALID_PARAMS,
    "value": ErrorCode.INVALID_PARAMS,
    "key": ErrorCode.NOT_FOUND,
}
_PATTERN_KEYS = tuple(_PATTERN_CODES.keys())


@lru_cache(maxsize=256)
def _classify_cached(exc_key: str) -> ErrorCode:
    haystack = exc_key.lower()
    for pattern in _PATTERN_KEYS:
        if pattern in haystack:
            return _PATTERN_CODES[pattern]
    return ErrorCode.UNKNOWN


def classify_exception(exc: BaseException) -> ErrorCode:
    """Map an exception to an error code.

    Known `PatternError`s carry their own code; foreign exceptions are
    classified by pattern matching on type name and message.
    """
    if isinstance(exc, PatternError):
        return exc.code
    return _classify_cached(f"{type(exc).__name__} {exc}")


# ─────────────────────────────────────────────────────────────────────────────
# Exceptions
# ─────────────────────────────────────────────────────────────────────────────


class PatternError(Exception):
    """Base for every failure raised by the engine."""

    code: ErrorCode = ErrorCode.UNKNOWN
    recoverable: bool = False

    def __init__(self, message: str, *, details: JsonDict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: JsonDict = details or {}

    @property
    def kind(self) -> str:
        return type(self).__name__


class InputValidationError(PatternError):
    """Caller input rejected before any generation call."""
    code = ErrorCode.INVALID_INPUT


class ProviderError(PatternError):
    """Failure talking to the model backend."""
    code = ErrorCode.EXTERNAL_SERVICE_ERROR


class ProviderTimeout(ProviderError):
    code = ErrorCode.TIMEOUT
    recoverable = True


class ProviderRateLimited(ProviderError):
    code = ErrorCode.RATE_LIMITED
    recoverable = True

    def __init__(self, message: str, *, retry_after: float | None = None, details: JsonDict | None = None) -> None:
        super().__init__(message, details=details)
        self.retry_after = retry_after


class ProviderUnavailable(ProviderError):
    """Backend unreachable or answering 5xx."""
    code = ErrorCode.NETWORK_ERROR
    recoverable = True


class ProviderRequestRejected(ProviderError):
    """Backend refused the request (4xx other than 429)."""
    code = ErrorCode.REQUEST_REJECTED


class ProviderMalformedResponse(ProviderError):
    """Backend answered, but not with something parseable. Never retried."""
    code = ErrorCode.MALFORMED_RESPONSE


class SchemaViolation(PatternError):
    """A value does not conform to its SchemaSpec."""
    code = ErrorCode.SCHEMA_VIOLATION

    def __init__(self, message: str, *, violations: list[str] | None = None, details: JsonDict | None = None) -> None:
        self.violations: list[str] = violations or [message]
        super().__init__(message, details={"violations": self.violations, **(details or {})})


class ToolArgumentsInvalid(SchemaViolation):
    """Tool call arguments do not match the tool's parameter schema."""
    code = ErrorCode.INVALID_PARAMS


class ToolNotFound(PatternError):
    code = ErrorCode.NOT_FOUND


class ToolTimeout(PatternError):
    code = ErrorCode.TIMEOUT
    recoverable = True


class ToolExecutionError(PatternError):
    code = ErrorCode.TOOL_ERROR


class PlanValidationError(PatternError):
    """Orchestrator plan references unknown tasks, repeats ids, or has a cycle."""
    code = ErrorCode.INVALID_PLAN


class StepLimitExceeded(PatternError):
    code = ErrorCode.STEP_LIMIT


class CancellationRequested(PatternError):
    code = ErrorCode.CANCELLED


# ─────────────────────────────────────────────────────────────────────────────
# Serializable marker
# ─────────────────────────────────────────────────────────────────────────────


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Failure(BaseModel):
    """Structured failure marker carried by frames and tool results.

    Attributes:
        kind: Exception class name (e.g. ``SchemaViolation``)
        message: Human-readable message
        code: Machine-readable classification
        recoverable: Whether a retry might succeed
        details: Extra structured context (violations, tool name, ...)
        timestamp: When the failure was observed (UTC)
    """

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        validate_default=True,
        json_schema_extra={
            "title": "Failure",
            "examples": [{
                "kind": "SchemaViolation",
                "message": "$.score: expected at most 10",
                "code": "SCHEMA_VIOLATION",
                "recoverable": False,
            }],
        },
    )

    kind: Annotated[str, Field(min_length=1)]
    message: str
    code: ErrorCode = ErrorCode.UNKNOWN
    recoverable: bool = False
    details: JsonDict = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_now)

    @field_validator("message", mode="before")
    @classmethod
    def _ensure_message(cls, v: str | Exception) -> str:
        return str(v) if isinstance(v, Exception) else v

    @classmethod
    def from_exception(cls, exc: BaseException, *, include_trace: bool = False, **details: object) -> Self:
        """Create from an exception, classifying foreign ones."""
        if isinstance(exc, PatternError):
            merged = {**exc.details, **details}
            return cls(kind=exc.kind, message=exc.message, code=exc.code, recoverable=exc.recoverable, details=merged)
        extra: JsonDict = dict(details)
        if include_trace:
            extra["trace"] = "".join(traceback.format_exception(exc))
        code = classify_exception(exc)
        return cls(
            kind=type(exc).__name__,
            message=str(exc) or type(exc).__name__,
            code=code,
            recoverable=code in RETRYABLE_CODES,
            details=extra,
        )

    def to_dict(self) -> JsonDict:
        return self.model_dump(mode="json")
