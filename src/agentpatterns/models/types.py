"""Request and result types exchanged with model backends."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from agentpatterns.foundation.errors import JsonDict
from agentpatterns.foundation.schema import SchemaSpec


class ModelProfile(StrEnum):
    """Capability tier. Backends map profiles to concrete model ids."""
    FAST = "fast"
    COMPLEX = "complex"


class Role(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class CompletionStatus(StrEnum):
    COMPLETE = "complete"
    TRUNCATED = "truncated"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class Message:
    role: Role
    content: str
    name: str | None = None

    def to_dict(self) -> JsonDict:
        out: JsonDict = {"role": self.role.value, "content": self.content}
        if self.name:
            out["name"] = self.name
        return out


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """What a backend needs to know about a tool to propose calls to it."""

    name: str
    description: str
    parameters: JsonDict


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    """One model call. Never mutated after issuance.

    Attributes:
        profile: Capability tier to use
        prompt: User-turn text (non-empty)
        schema: Optional shape the backend is instructed to honor
        tools: Tool declarations offered to the backend
        history: Prior conversation turns, oldest first
        system: Optional system instruction
    """

    profile: ModelProfile
    prompt: str
    schema: SchemaSpec | None = None
    tools: tuple[ToolSpec, ...] = ()
    history: tuple[Message, ...] = ()
    system: str | None = None

    def messages(self) -> list[Message]:
        """Full message list as sent to a chat backend."""
        head = [Message(Role.SYSTEM, self.system)] if self.system else []
        return [*head, *self.history, Message(Role.USER, self.prompt)]


@dataclass(frozen=True, slots=True)
class TextResult:
    text: str
    status: CompletionStatus = CompletionStatus.COMPLETE
    usage: JsonDict = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class StructuredResult:
    value: Any
    schema: SchemaSpec
    status: CompletionStatus = CompletionStatus.COMPLETE
    usage: JsonDict = field(default_factory=dict)


GenerationResult = TextResult | StructuredResult
