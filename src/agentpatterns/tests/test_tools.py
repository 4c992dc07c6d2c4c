"""Tests for the ToolInvocationRouter and the calculator tool.

Validates:
- Successful dispatch of sync and async handlers
- Unknown tools, invalid arguments, handler errors and timeouts become error results
- Argument isolation between concurrent calls
- Cancellation is the only failure that propagates
"""

from __future__ import annotations

import asyncio
from typing import Any

import orjson
import pytest

from agentpatterns.foundation.config import ToolSettings
from agentpatterns.foundation.errors import CancellationRequested, ErrorCode, ToolExecutionError
from agentpatterns.foundation.schema import array_of, field, integer, schema
from agentpatterns.models import Role
from agentpatterns.runtime.concurrency import CancelSignal
from agentpatterns.runtime.observability import RecordingObserver
from agentpatterns.runtime.retry import ConstantBackoff, RetryPolicy
from agentpatterns.runtime.tools import (
    CALCULATOR_PARAMS,
    ToolCallRequest,
    ToolCallResult,
    ToolDescriptor,
    ToolInvocationRouter,
    calculator,
    evaluate,
    tool,
)

ITEMS = schema("append", field("items", array_of(integer())))
WAIT = schema("wait", field("seconds", integer()))


@tool("append", "Append a marker to the items", ITEMS)
def append_marker(args: dict[str, Any]) -> list[int]:
    args["items"].append(99)
    return args["items"]


@tool("wait", "Sleep for a while", WAIT, timeout=0.05)
async def wait(args: dict[str, Any]) -> str:
    await asyncio.sleep(args["seconds"])
    return "done"


@tool("boom", "Always fails", schema("boom"))
def boom(args: dict[str, Any]) -> None:
    raise RuntimeError("kaput")


# ═════════════════════════════════════════════════════════════════════════════
# Calculator
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize(("expression", "expected"), [
    ("2+2", "4"),
    ("(2 + 3) * 4", "20"),
    ("7 / 2", "3.5"),
    ("8 / 2", "4"),
    ("-3 ** 2", "-9"),
    ("17 // 5 + 17 % 5", "5"),
])
def test_calculator_evaluates(expression: str, expected: str) -> None:
    assert evaluate(expression) == expected


@pytest.mark.parametrize("expression", ["__import__('os')", "x + 1", "1 / 0", "2 ** 10000", "True + 1", "1 +"])
def test_calculator_rejects(expression: str) -> None:
    with pytest.raises(ToolExecutionError):
        evaluate(expression)


@pytest.mark.parametrize("expression", [
    "((9 ** 1000) ** 1000) ** 1000",
    "9 ** 9 ** 9",
    "(2 ** 4000) * (2 ** 4000)",
    "(7 ** 1000) ** 10",
])
def test_calculator_bounds_integer_growth(expression: str) -> None:
    with pytest.raises(ToolExecutionError, match="result too large"):
        evaluate(expression)


@pytest.mark.parametrize(("expression", "expected"), [
    ("1 ** 1000000", "1"),
    ("(-1) ** 1000001", "-1"),
    ("2 ** -2", "0.25"),
])
def test_calculator_trivial_bases_are_not_bounded(expression: str, expected: str) -> None:
    assert evaluate(expression) == expected


def test_calculator_result_within_bound() -> None:
    assert evaluate("2 ** 64") == str(2 ** 64)
    assert len(evaluate("3 ** 1000")) == len(str(3 ** 1000))


def test_calculator_descriptor() -> None:
    descriptor = calculator()
    assert descriptor.name == "calculate"
    assert descriptor.parameters is CALCULATOR_PARAMS
    assert descriptor.to_spec().parameters["required"] == ["expression"]


# ═════════════════════════════════════════════════════════════════════════════
# Registration
# ═════════════════════════════════════════════════════════════════════════════


def test_duplicate_registration_rejected(router: ToolInvocationRouter) -> None:
    with pytest.raises(ValueError):
        router.register(calculator())


def test_specs_and_container_protocol(router: ToolInvocationRouter) -> None:
    router.register(append_marker)
    assert "calculate" in router and "append" in router
    assert len(router) == 2
    assert [t.name for t in router] == ["calculate", "append"]
    assert [s.name for s in router.specs()] == ["calculate", "append"]


def test_bind_shares_tools(router: ToolInvocationRouter) -> None:
    bound = router.bind(cancel=CancelSignal())
    router.register(append_marker)
    assert "append" in bound


def test_from_settings() -> None:
    router = ToolInvocationRouter.from_settings(ToolSettings(timeout=3.0, max_retries=2))
    assert router.timeout == 3.0
    assert router.policy.max_retries == 2
    assert router.policy.retryable_codes == frozenset({ErrorCode.TIMEOUT})


# ═════════════════════════════════════════════════════════════════════════════
# Dispatch
# ═════════════════════════════════════════════════════════════════════════════


class TestDispatch:
    @pytest.mark.asyncio
    async def test_calculator_call(self, router: ToolInvocationRouter) -> None:
        result = await router.dispatch(ToolCallRequest("calculate", {"expression": "2+2"}))
        assert result.ok
        assert result.payload == {"result": "4"}
        assert result.call_id.startswith("call_")

    @pytest.mark.asyncio
    async def test_unknown_tool(self, router: ToolInvocationRouter) -> None:
        result = await router.dispatch(ToolCallRequest("search", {"q": "x"}))
        assert result.error is not None and result.error.code is ErrorCode.NOT_FOUND
        assert result.error.details["available"] == ["calculate"]

    @pytest.mark.asyncio
    async def test_invalid_arguments(self, router: ToolInvocationRouter) -> None:
        result = await router.dispatch(ToolCallRequest("calculate", {"expr": "2+2"}))
        assert result.error is not None and result.error.code is ErrorCode.INVALID_PARAMS
        assert "$.expression: required field missing" in result.error.message

    @pytest.mark.asyncio
    async def test_handler_exception(self, router: ToolInvocationRouter) -> None:
        router.register(boom)
        result = await router.dispatch(ToolCallRequest("boom"))
        assert result.error is not None and result.error.code is ErrorCode.TOOL_ERROR
        assert "kaput" in result.error.message

    @pytest.mark.asyncio
    async def test_timeout_is_retried_per_policy(self) -> None:
        observer = RecordingObserver()
        router = ToolInvocationRouter(policy=RetryPolicy(max_retries=1, backoff=ConstantBackoff(0.001),
                                                         retryable_codes=["TIMEOUT"]), observer=observer)
        router.register(wait)
        result = await router.dispatch(ToolCallRequest("wait", {"seconds": 1}))
        assert result.error is not None and result.error.code is ErrorCode.TIMEOUT
        assert len(observer.named("tool.call.retry")) == 1
        assert observer.named("tool.call.failed")[0].attributes["code"] == "TIMEOUT"

    @pytest.mark.asyncio
    async def test_each_call_gets_its_own_arguments(self, router: ToolInvocationRouter) -> None:
        router.register(append_marker)
        shared = {"items": [1]}
        results = await router.dispatch_many([ToolCallRequest("append", shared), ToolCallRequest("append", shared)])
        assert [r.payload for r in results] == [[1, 99], [1, 99]]
        assert shared == {"items": [1]}

    @pytest.mark.asyncio
    async def test_dispatch_many_preserves_order(self, router: ToolInvocationRouter) -> None:
        requests = [ToolCallRequest("calculate", {"expression": e}) for e in ("1+1", "2*3", "nope")]
        results = await router.dispatch_many(requests)
        assert [r.call_id for r in results] == [r.call_id for r in requests]
        assert [r.ok for r in results] == [True, True, False]
        assert await router.dispatch_many([]) == []

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self) -> None:
        signal = CancelSignal()
        router = ToolInvocationRouter(timeout=5.0, cancel=signal)
        router.register(ToolDescriptor("slow", "Sleep", WAIT, wait.handler))
        task = asyncio.create_task(router.dispatch(ToolCallRequest("slow", {"seconds": 5})))
        await asyncio.sleep(0.01)
        signal.cancel("stop")
        with pytest.raises(CancellationRequested):
            await asyncio.wait_for(task, timeout=1.0)

    @pytest.mark.asyncio
    async def test_events_carry_call_identity(self, router: ToolInvocationRouter) -> None:
        observer = RecordingObserver()
        bound = router.bind(observer=observer)
        result = await bound.dispatch(ToolCallRequest("calculate", {"expression": "1"}, call_id="call_x"))
        assert observer.names() == ["tool.call.start", "tool.call.complete"]
        assert all(e.attributes["call_id"] == "call_x" for e in observer.events)
        assert result.duration_ms >= 0


def test_result_message_for_next_step() -> None:
    message = ToolCallResult("call_1", "calculate", payload={"result": "4"}).to_message()
    assert message.role is Role.TOOL and message.name == "calculate"
    assert orjson.loads(message.content) == {"call_id": "call_1", "name": "calculate", "ok": True,
                                             "result": {"result": "4"}}
