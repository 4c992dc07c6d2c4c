"""Direct streaming: one structured call, streamed straight through."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from agentpatterns.foundation.schema import choice, field, schema, string
from agentpatterns.models import GenerationRequest, ModelProfile
from agentpatterns.runtime.execution import PatternExecution

from .base import Capabilities

SYSTEM_PROMPT = (
    "You are a helpful assistant. Respond in JSON with a short title, the "
    "content of your answer, and status set to complete when you are done."
)


class DirectStreamStrategy:
    """Single streaming call against ``{title?, content?, status?}``.

    Accepts plain input or a conversation; earlier turns become history.
    """

    name = "stream"
    result_schema = schema(
        "stream_response",
        field("title", string(), required=False),
        field("content", string(), required=False),
        field("status", choice("processing", "complete"), required=False),
    )

    def __init__(self, *, profile: ModelProfile = ModelProfile.FAST, system: str = SYSTEM_PROMPT) -> None:
        self.profile = profile
        self.system = system

    async def run(self, execution: PatternExecution, caps: Capabilities) -> AsyncIterator[Any]:
        request = GenerationRequest(
            self.profile,
            f"Generate a helpful response for: {execution.input}",
            schema=self.result_schema,
            history=execution.messages[:-1],
            system=self.system,
        )
        async for value in caps.stream(request):
            yield value
