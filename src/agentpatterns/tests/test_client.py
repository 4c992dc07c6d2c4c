"""Tests for PatternClient against the in-process ASGI app.

Validates:
- Text-wire responses are reconciled into frames, terminal last
- NDJSON responses keep typed failure markers
- Transfer metrics are recorded
- HTTP and transport errors map to PatternErrors
"""

from __future__ import annotations

import httpx
import orjson
import pytest

pytest.importorskip("starlette")

from agentpatterns.ext.http import PatternClient, create_app  # noqa: E402
from agentpatterns.foundation.config import AgentPatternsSettings, ServerSettings  # noqa: E402
from agentpatterns.foundation.errors import (  # noqa: E402
    ErrorCode,
    InputValidationError,
    ProviderError,
    ProviderRequestRejected,
    ProviderTimeout,
    ProviderUnavailable,
)
from agentpatterns.foundation.testing import ScriptedInvoker, Stream  # noqa: E402
from agentpatterns.runtime.agents import DirectStreamStrategy, default_executors  # noqa: E402
from agentpatterns.runtime.observability import RecordingObserver  # noqa: E402

ANSWER = {"title": "Tides", "content": "The moon pulls the oceans.", "status": "complete"}
SCHEMA = DirectStreamStrategy.result_schema


def asgi_client(model: ScriptedInvoker, settings: AgentPatternsSettings) -> PatternClient:
    app = create_app(default_executors(model, settings=settings, observer=RecordingObserver()), settings)
    return PatternClient("http://testserver", client=httpx.AsyncClient(transport=httpx.ASGITransport(app=app)))


# ═════════════════════════════════════════════════════════════════════════════
# Streams
# ═════════════════════════════════════════════════════════════════════════════


class TestPatternClient:
    @pytest.mark.asyncio
    async def test_text_stream(self, model: ScriptedInvoker, settings: AgentPatternsSettings) -> None:
        model.on("stream_response", Stream.of(ANSWER, size=6))

        async with asgi_client(model, settings) as client:
            frames = [f async for f in client.stream("stream", SCHEMA, "Explain tides")]
        assert frames[-1].terminal and frames[-1].ok
        assert frames[-1].payload == ANSWER
        assert not any(f.terminal for f in frames[:-1])
        assert client.metrics.chunks >= 1
        assert client.metrics.bytes == len(orjson.dumps(ANSWER))
        assert client.metrics.duration_ms is not None

    @pytest.mark.asyncio
    async def test_text_stream_failure_is_incomplete_document(self, model: ScriptedInvoker,
                                                              settings: AgentPatternsSettings) -> None:
        model.on("stream_response", Stream(['{"title": "Ti', 'des", "content": "The'],
                                           raises=ProviderUnavailable("reset")))

        async with asgi_client(model, settings) as client:
            frames = [f async for f in client.stream("stream", SCHEMA, "Explain tides")]
        failure = frames[-1].failure
        assert failure is not None and failure.code is ErrorCode.SCHEMA_VIOLATION

    @pytest.mark.asyncio
    async def test_ndjson_keeps_failure_type(self, model: ScriptedInvoker, settings: AgentPatternsSettings) -> None:
        settings = settings.model_copy(update={"server": ServerSettings(wire_format="ndjson")})
        model.on("stream_response", Stream(['{"title": "Ti', 'des", "content": "The'],
                                           raises=ProviderUnavailable("reset")))

        async with asgi_client(model, settings) as client:
            frames = [f async for f in client.stream("stream", SCHEMA, "Explain tides")]
        assert [f.sequence for f in frames] == list(range(len(frames)))
        failure = frames[-1].failure
        assert failure is not None and failure.code is ErrorCode.NETWORK_ERROR
        assert frames[-1].payload["title"] == "Tides"

    @pytest.mark.asyncio
    async def test_messages_body(self, model: ScriptedInvoker, settings: AgentPatternsSettings) -> None:
        model.on("stream_response", ANSWER)

        async with asgi_client(model, settings) as client:
            frames = [f async for f in client.stream("stream", SCHEMA, messages=[{"role": "user", "content": "Hi"}])]
        assert frames[-1].payload == ANSWER
        assert model.last_call is not None
        assert model.last_call.request.prompt.endswith("Hi")

    @pytest.mark.asyncio
    async def test_rejected_request(self, model: ScriptedInvoker, settings: AgentPatternsSettings) -> None:
        async with asgi_client(model, settings) as client:
            with pytest.raises(ProviderError, match="Input cannot be empty") as exc_info:
                async for _ in client.stream("stream", SCHEMA, ""):
                    pass
        assert exc_info.value.details == {"status": 500}

    @pytest.mark.asyncio
    async def test_provider_failure_before_first_frame(self, model: ScriptedInvoker,
                                                       settings: AgentPatternsSettings) -> None:
        model.on("stream_response", ProviderRequestRejected("blocked by policy"))

        async with asgi_client(model, settings) as client:
            with pytest.raises(ProviderError, match="blocked by policy") as exc_info:
                async for _ in client.stream("stream", SCHEMA, "Explain tides"):
                    pass
        assert not isinstance(exc_info.value, InputValidationError)
        assert exc_info.value.code is ErrorCode.EXTERNAL_SERVICE_ERROR
        assert exc_info.value.details == {"status": 500}

    @pytest.mark.asyncio
    async def test_unknown_route(self, model: ScriptedInvoker, settings: AgentPatternsSettings) -> None:
        async with asgi_client(model, settings) as client:
            with pytest.raises(ProviderRequestRejected) as exc_info:
                async for _ in client.stream("horoscope", SCHEMA, "Aries"):
                    pass
        assert exc_info.value.details == {"status": 404}


# ═════════════════════════════════════════════════════════════════════════════
# Transport errors
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize(("error", "expected"), [
    (httpx.ConnectError, ProviderUnavailable),
    (httpx.ReadTimeout, ProviderTimeout),
])
@pytest.mark.asyncio
async def test_transport_errors(error: type[httpx.TransportError], expected: type[Exception]) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise error("boom", request=request)

    client = PatternClient("http://testserver", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    with pytest.raises(expected):
        async for _ in client.stream("stream", SCHEMA, "hi"):
            pass
    assert client.metrics.end is not None
