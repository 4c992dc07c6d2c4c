"""Routing pattern: classify, pick a specialist, stream its answer."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from agentpatterns.foundation.schema import array_of, choice, field, schema, string
from agentpatterns.models import GenerationRequest, ModelProfile, build_prompt, select_profile
from agentpatterns.models.prompts import Priority
from agentpatterns.runtime.execution import PatternExecution

from .base import Capabilities

CLASSIFICATION = schema(
    "classification",
    field("category", string(), description="Request category"),
    field("complexity", choice("simple", "moderate", "complex")),
    field("reasoning", string(), description="Why this category was chosen"),
)

SPECIALIST_RESPONSE = schema(
    "specialist_response",
    field("response", string()),
    field("next_steps", array_of(string()), required=False),
)


@dataclass(frozen=True, slots=True)
class Specialist:
    """Route target.

    Attributes:
        category: Classification category this specialist serves
        instruction: Prompt fragment setting up the specialist
        priority: Speed or quality bias for profile selection
    """

    category: str
    instruction: str
    priority: Priority = "quality"


DEFAULT_SPECIALISTS: tuple[Specialist, ...] = (
    Specialist("support", "You are a friendly customer support agent. Resolve the issue step by step.", "speed"),
    Specialist("billing", "You are a billing specialist. Be precise about charges, refunds and invoices.", "speed"),
    Specialist("technical", "You are a senior engineer. Diagnose the problem and give concrete fixes."),
    Specialist("sales", "You are a product specialist. Match the customer's needs to the right offering.", "speed"),
)

GENERAL = Specialist("general", "You are a helpful assistant. Answer clearly and concisely.")


class RoutingStrategy:
    """classification (fast) -> static lookup -> one streamed specialist call.

    Unknown categories go to the fallback specialist and record a
    `routing.fallback` event. Output carries the classification.
    """

    name = "routing"
    result_schema = schema(
        "routed_response",
        field("classification", CLASSIFICATION),
        field("specialist", string()),
        field("response", string()),
        field("next_steps", array_of(string()), required=False),
    )

    def __init__(self, specialists: Iterable[Specialist] = DEFAULT_SPECIALISTS, *,
                 fallback: Specialist = GENERAL) -> None:
        self.specialists = MappingProxyType({s.category: s for s in specialists})
        self.fallback = fallback

    def select(self, category: str) -> Specialist | None:
        return self.specialists.get(category.strip().lower())

    def _classification_request(self, text: str) -> GenerationRequest:
        prompt = build_prompt(
            f"Classify this request:\n{text}",
            context="Categories: " + ", ".join([*self.specialists, self.fallback.category]),
            constraints=["Pick exactly one category", "Rate complexity as simple, moderate or complex"],
        )
        return GenerationRequest(ModelProfile.FAST, prompt, schema=CLASSIFICATION)

    async def run(self, execution: PatternExecution, caps: Capabilities) -> AsyncIterator[Any]:
        classification = await caps.structured(self._classification_request(execution.input))
        if (specialist := self.select(classification["category"])) is None:
            specialist = self.fallback
            execution.record("routing.fallback", category=classification["category"],
                             fallback=specialist.category)
        profile = select_profile(classification["complexity"], specialist.priority)
        execution.record("routing.selected", category=classification["category"],
                         specialist=specialist.category, profile=profile.value)

        head = {"classification": classification, "specialist": specialist.category}
        yield head
        request = GenerationRequest(profile, execution.input, schema=SPECIALIST_RESPONSE,
                                    system=specialist.instruction)
        async for value in caps.stream(request):
            yield {**head, **value}
