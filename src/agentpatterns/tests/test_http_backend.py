"""Tests for the OpenAI-compatible httpx backend using httpx.MockTransport."""

from __future__ import annotations

from collections.abc import Callable

import httpx
import orjson
import pytest

from agentpatterns.foundation.config import ModelSettings
from agentpatterns.foundation.errors import (
    ProviderMalformedResponse,
    ProviderRateLimited,
    ProviderRequestRejected,
    ProviderTimeout,
    ProviderUnavailable,
)
from agentpatterns.foundation.schema import field, schema, string
from agentpatterns.models import (
    CompletionStatus,
    GenerationRequest,
    Message,
    ModelProfile,
    OpenAICompatibleInvoker,
    Role,
    StructuredResult,
    TextResult,
    ToolSpec,
)

TITLE = schema("titled", field("title", string()))


def _backend(handler: Callable[[httpx.Request], httpx.Response]) -> OpenAICompatibleInvoker:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OpenAICompatibleInvoker("https://llm.test/v1", api_key="sk-test", client=client,
                                   models={ModelProfile.FAST: "small", ModelProfile.COMPLEX: "large"})


def _completion(content: str, finish: str = "stop") -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"content": content}, "finish_reason": finish}],
                                     "usage": {"total_tokens": 12}})


def _sse(*contents: str) -> httpx.Response:
    lines = [f"data: {orjson.dumps({'choices': [{'delta': {'content': c}}]}).decode()}" for c in contents]
    body = "\n\n".join([*lines, "data: [DONE]"]) + "\n\n"
    return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})


# ═════════════════════════════════════════════════════════════════════════════
# Request Building
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_request_body_carries_model_schema_and_auth() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = orjson.loads(request.content)
        return _completion('{"title": "Hi"}')

    backend = _backend(handler)
    request = GenerationRequest(ModelProfile.COMPLEX, "Say hi", schema=TITLE, system="Be brief",
                                history=(Message(Role.USER, "earlier"),))
    result = await backend.invoke(request)

    assert isinstance(result, StructuredResult) and result.value == {"title": "Hi"}
    assert seen["url"] == "https://llm.test/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    body = seen["body"]
    assert isinstance(body, dict)
    assert body["model"] == "large"
    assert [m["role"] for m in body["messages"]] == ["system", "user", "user"]
    assert body["response_format"]["json_schema"]["name"] == "titled"


def test_tool_results_are_sent_as_user_turns() -> None:
    backend = OpenAICompatibleInvoker("https://llm.test/v1")
    request = GenerationRequest(ModelProfile.FAST, "Continue",
                                tools=(ToolSpec("calculate", "math", {"type": "object"}),),
                                history=(Message(Role.TOOL, '{"result": "4"}', name="calculate"),))
    body = backend.build_body(request, stream=True)
    assert body["stream"] is True
    assert body["messages"][0]["role"] == "system" and "calculate" in body["messages"][0]["content"]
    assert body["messages"][1] == {"role": "user", "content": '{"result": "4"}'}


def test_from_settings_reads_secret() -> None:
    settings = ModelSettings(api_key="sk-abc", fast_model="mini")
    backend = OpenAICompatibleInvoker.from_settings(settings)
    assert backend._api_key == "sk-abc"
    assert backend._models[ModelProfile.FAST] == "mini"


# ═════════════════════════════════════════════════════════════════════════════
# Responses
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_plain_text_and_truncation_status() -> None:
    backend = _backend(lambda r: _completion("partial answ", finish="length"))
    result = await backend.invoke(GenerationRequest(ModelProfile.FAST, "Hi"))
    assert isinstance(result, TextResult)
    assert result.status is CompletionStatus.TRUNCATED
    assert result.usage == {"total_tokens": 12}


@pytest.mark.asyncio
@pytest.mark.parametrize(("status", "error"), [
    (429, ProviderRateLimited),
    (503, ProviderUnavailable),
    (400, ProviderRequestRejected),
])
async def test_status_codes_map_to_provider_errors(status: int, error: type[Exception]) -> None:
    backend = _backend(lambda r: httpx.Response(status, headers={"retry-after": "2"}, text="nope"))
    with pytest.raises(error):
        await backend.invoke(GenerationRequest(ModelProfile.FAST, "Hi"))


@pytest.mark.asyncio
async def test_rate_limit_carries_retry_after() -> None:
    backend = _backend(lambda r: httpx.Response(429, headers={"retry-after": "2"}))
    with pytest.raises(ProviderRateLimited) as exc:
        await backend.invoke(GenerationRequest(ModelProfile.FAST, "Hi"))
    assert exc.value.retry_after == 2.0


@pytest.mark.asyncio
async def test_transport_errors_are_mapped() -> None:
    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ProviderTimeout):
        await _backend(timeout).invoke(GenerationRequest(ModelProfile.FAST, "Hi"))
    with pytest.raises(ProviderUnavailable):
        await _backend(refused).invoke(GenerationRequest(ModelProfile.FAST, "Hi"))


@pytest.mark.asyncio
async def test_unexpected_payload_is_malformed() -> None:
    backend = _backend(lambda r: httpx.Response(200, json={"nothing": []}))
    with pytest.raises(ProviderMalformedResponse):
        await backend.invoke(GenerationRequest(ModelProfile.FAST, "Hi"))


@pytest.mark.asyncio
async def test_structured_non_json_is_malformed() -> None:
    backend = _backend(lambda r: _completion("not json"))
    with pytest.raises(ProviderMalformedResponse):
        await backend.invoke(GenerationRequest(ModelProfile.FAST, "Hi", schema=TITLE))


# ═════════════════════════════════════════════════════════════════════════════
# Streaming
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_sse_deltas_are_yielded_in_order() -> None:
    backend = _backend(lambda r: _sse('{"ti', 'tle": ', '"Hi"}'))
    deltas = [d async for d in backend.invoke_streaming(GenerationRequest(ModelProfile.FAST, "Hi", schema=TITLE))]
    assert "".join(deltas) == '{"title": "Hi"}'


@pytest.mark.asyncio
async def test_stream_error_status_is_mapped() -> None:
    backend = _backend(lambda r: httpx.Response(500, text="boom"))
    with pytest.raises(ProviderUnavailable):
        async for _ in backend.invoke_streaming(GenerationRequest(ModelProfile.FAST, "Hi")):
            pass


@pytest.mark.asyncio
async def test_malformed_stream_chunk() -> None:
    backend = _backend(lambda r: httpx.Response(200, text="data: {not json\n\n",
                                                headers={"content-type": "text/event-stream"}))
    with pytest.raises(ProviderMalformedResponse):
        async for _ in backend.invoke_streaming(GenerationRequest(ModelProfile.FAST, "Hi")):
            pass
