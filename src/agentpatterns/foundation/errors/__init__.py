"""Error taxonomy for agentpatterns.

- ErrorCode: Machine-readable failure classification
- PatternError and subclasses: Raised failures
- Failure: Serializable marker carried by frames and tool results
"""

from .errors import (
    RETRYABLE_CODES,
    CancellationRequested,
    ErrorCode,
    Failure,
    InputValidationError,
    PatternError,
    PlanValidationError,
    ProviderError,
    ProviderMalformedResponse,
    ProviderRateLimited,
    ProviderRequestRejected,
    ProviderTimeout,
    ProviderUnavailable,
    SchemaViolation,
    StepLimitExceeded,
    ToolArgumentsInvalid,
    ToolExecutionError,
    ToolNotFound,
    ToolTimeout,
    classify_exception,
)
from .types import JsonDict, JsonPrimitive, JsonValue

__all__ = [
    "ErrorCode", "RETRYABLE_CODES", "classify_exception", "Failure",
    "PatternError", "InputValidationError", "SchemaViolation",
    "ProviderError", "ProviderTimeout", "ProviderRateLimited", "ProviderUnavailable",
    "ProviderRequestRejected", "ProviderMalformedResponse",
    "ToolTimeout", "ToolExecutionError", "ToolArgumentsInvalid", "ToolNotFound", "PlanValidationError", "StepLimitExceeded",
    "CancellationRequested",
    "JsonDict", "JsonPrimitive", "JsonValue",
]
