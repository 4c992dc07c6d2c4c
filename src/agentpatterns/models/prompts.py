"""Prompt helpers shared by every pattern.

- build_prompt: instruction plus optional context, examples and constraints
- validate_input: reject empty or oversized input, flag injection-looking text
- select_profile: fast vs complex tier from task complexity and priority
- evaluation_schema: the standard 1-10 quality evaluation shape
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Literal

from agentpatterns.foundation.errors import InputValidationError
from agentpatterns.foundation.schema import SchemaSpec, array_of, field, number, schema, string

from .types import ModelProfile

Complexity = Literal["simple", "moderate", "complex"]
Priority = Literal["speed", "quality"]

# Heuristics only: matches are reported, never rejected
SUSPICIOUS_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("ignore_instructions", re.compile(r"ignore\s+(previous|above|all)\s+instructions", re.IGNORECASE)),
    ("role_override", re.compile(r"you\s+are\s+now\s+a", re.IGNORECASE)),
    ("impersonation", re.compile(r"pretend\s+to\s+be", re.IGNORECASE)),
)


def build_prompt(
    instruction: str,
    context: str | None = None,
    examples: Sequence[str] | None = None,
    constraints: Sequence[str] | None = None,
) -> str:
    """Assemble a prompt with consistent section formatting.

    Example:
        >>> print(build_prompt("Summarize.", constraints=["Be brief"]))
        Summarize.
        <BLANKLINE>
        Constraints:
        - Be brief
    """
    prompt = instruction
    if context:
        prompt += f"\n\nContext:\n{context}"
    if examples:
        prompt += "\n\nExamples:\n" + "\n".join(examples)
    if constraints:
        prompt += "\n\nConstraints:\n" + "\n".join(f"- {c}" for c in constraints)
    return prompt


def validate_input(text: str, max_length: int = 10_000) -> list[str]:
    """Check caller input before any generation call.

    Returns:
        Names of suspicious patterns found (possibly empty)

    Raises:
        InputValidationError: empty/whitespace-only or longer than max_length
    """
    if not isinstance(text, str) or not text.strip():
        raise InputValidationError("Input cannot be empty")
    if len(text) > max_length:
        raise InputValidationError(f"Input too long. Maximum {max_length} characters allowed.",
                                   details={"length": len(text), "max_length": max_length})
    return [name for name, pattern in SUSPICIOUS_PATTERNS if pattern.search(text)]


def select_profile(complexity: Complexity, priority: Priority = "quality") -> ModelProfile:
    """Pick a capability tier.

    Speed wins unless the task is complex; otherwise quality or complexity
    selects the complex tier.
    """
    if priority == "speed" and complexity != "complex":
        return ModelProfile.FAST
    if complexity == "complex" or priority == "quality":
        return ModelProfile.COMPLEX
    return ModelProfile.FAST


_EVALUATION = schema(
    "evaluation",
    field("score", number(minimum=1, maximum=10), description="Quality score from 1-10"),
    field("feedback", string(), description="Detailed feedback on quality"),
    field("strengths", array_of(string()), required=False, description="Identified strengths"),
    field("improvements", array_of(string()), required=False, description="Suggested improvements"),
    field("confidence", number(minimum=0, maximum=1), required=False, description="Confidence in evaluation"),
)


def evaluation_schema() -> SchemaSpec:
    return _EVALUATION
