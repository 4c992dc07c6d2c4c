"""Model invocation: request types, the ModelInvoker protocol and its backends."""

from .http import OpenAICompatibleInvoker, raise_for_provider_status
from .invoker import ModelInvoker
from .prompts import SUSPICIOUS_PATTERNS, build_prompt, evaluation_schema, select_profile, validate_input
from .resilient import ResilientInvoker, parse_structured
from .types import (
    CompletionStatus,
    GenerationRequest,
    GenerationResult,
    Message,
    ModelProfile,
    Role,
    StructuredResult,
    TextResult,
    ToolSpec,
)

__all__ = [
    "ModelInvoker", "ResilientInvoker", "OpenAICompatibleInvoker", "raise_for_provider_status", "parse_structured",
    "GenerationRequest", "GenerationResult", "TextResult", "StructuredResult", "CompletionStatus",
    "Message", "Role", "ModelProfile", "ToolSpec",
    "build_prompt", "validate_input", "select_profile", "evaluation_schema", "SUSPICIOUS_PATTERNS",
]
