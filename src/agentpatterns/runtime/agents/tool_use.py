"""Tool-use pattern: the model alternates between tool calls and a final answer."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import orjson

from agentpatterns.foundation.errors import JsonDict, ProviderMalformedResponse, StepLimitExceeded
from agentpatterns.foundation.schema import array_of, field, integer, object_of, schema, string
from agentpatterns.models import GenerationRequest, Message, ModelProfile, Role
from agentpatterns.runtime.execution import PatternExecution
from agentpatterns.runtime.tools import ToolCallRequest

from .base import Capabilities

TOOL_CALL = schema(
    "tool_call",
    field("name", string(), description="Name of a declared tool"),
    field("arguments", object_of(), description="Argument object for the tool"),
)

AGENT_STEP = schema(
    "agent_step",
    field("thought", string(), required=False, description="Brief reasoning for this step"),
    field("tool_calls", array_of(TOOL_CALL), required=False, description="Tools to call before answering"),
    field("final_answer", string(), required=False, description="Answer for the user, once no tools are needed"),
)

SYSTEM_PROMPT = (
    "You are a helpful assistant. Call the declared tools when they help answer "
    "accurately. When you have everything you need, reply with final_answer only."
)

CONTINUE_PROMPT = "Use the tool results above to answer, or call more tools if needed."


class ToolUseStrategy:
    """Bounded step loop over one conversation.

    Each step is a streamed structured call offered the router's tools. A
    step with ``tool_calls`` is dispatched and the results are appended to
    the history; a step with only ``final_answer`` ends the loop. Reaching
    ``max_steps`` without an answer raises StepLimitExceeded.
    """

    name = "tool_use"
    result_schema = schema(
        "tool_use_result",
        field("tool_calls", array_of(object_of())),
        field("steps", integer(minimum=1)),
        field("answer", string()),
    )

    def __init__(self, *, max_steps: int | None = None, system: str = SYSTEM_PROMPT) -> None:
        self.max_steps = max_steps
        self.system = system

    async def run(self, execution: PatternExecution, caps: Capabilities) -> AsyncIterator[Any]:
        router = caps.require_router()
        max_steps = self.max_steps or caps.settings.tools.max_steps
        history: list[Message] = list(execution.messages[:-1])
        prompt = execution.input
        calls: list[JsonDict] = []

        for step in range(1, max_steps + 1):
            request = GenerationRequest(ModelProfile.COMPLEX, prompt, schema=AGENT_STEP, tools=router.specs(),
                                        history=tuple(history), system=self.system)
            value: JsonDict = {}
            async for value in caps.stream(request):
                if "final_answer" in value and "tool_calls" not in value:
                    yield {"tool_calls": list(calls), "steps": step, "answer": value["final_answer"]}

            requests = [ToolCallRequest(c["name"], c["arguments"]) for c in value.get("tool_calls") or ()]
            execution.record("tool_use.step", step=step, tool_calls=len(requests),
                             answered="final_answer" in value)
            if not requests:
                if "final_answer" not in value:
                    raise ProviderMalformedResponse(f"Step {step} produced neither tool calls nor an answer")
                return

            results = await router.dispatch_many(requests)
            execution.tool_results.extend(results)
            calls.extend(r.to_dict() for r in results)
            history.append(Message(Role.USER, prompt))
            history.append(Message(Role.ASSISTANT, orjson.dumps(value).decode()))
            history.extend(r.to_message() for r in results)
            prompt = CONTINUE_PROMPT
            yield {"tool_calls": list(calls)}

        raise StepLimitExceeded(f"No final answer after {max_steps} steps",
                                details={"max_steps": max_steps, "tool_calls": len(calls)})
