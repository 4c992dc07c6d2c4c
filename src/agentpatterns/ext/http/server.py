"""HTTP transport for pattern executors.

One POST endpoint per pattern:

- POST /api/{pattern}  body ``{"input": "..."}`` or ``{"messages": [{role, content}, ...]}``

The response streams the pattern's frames through a wire adapter. With the
default text wire the concatenated body is the final JSON document and every
prefix of it is parseable by a StreamReconciler. Failures detected before the
first frame (bad input, a failure on the first model call) are answered with
HTTP 500 ``{"error", "timestamp"}`` instead of a stream.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, AsyncIterator, Mapping
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, cast

import orjson

from agentpatterns.foundation.config import AgentPatternsSettings, get_settings
from agentpatterns.foundation.errors import InputValidationError
from agentpatterns.io.streaming import NDJSONAdapter, PrefixTextAdapter, StreamFrame, WireAdapter, encode_frames
from agentpatterns.runtime.agents import PatternExecutor, PatternRun
from agentpatterns.runtime.observability import get_logger

if TYPE_CHECKING:
    from starlette.applications import Starlette
    from starlette.requests import Request
    from starlette.responses import Response

STREAM_HEADERS = {"Cache-Control": "no-cache, no-transform", "Connection": "keep-alive"}

log = get_logger("agentpatterns.http")


def _adapter(run: PatternRun, wire_format: str) -> WireAdapter:
    if wire_format == "ndjson":
        return NDJSONAdapter()
    return PrefixTextAdapter(run.execution.observer, run.execution.context)


def _request_payload(body: Any) -> str | list[Any]:
    if not isinstance(body, Mapping):
        raise InputValidationError("Request body must be a JSON object")
    if (messages := body.get("messages")) is not None:
        if not isinstance(messages, list):
            raise InputValidationError("'messages' must be an array")
        return messages
    text = body.get("input")
    if not isinstance(text, str):
        raise InputValidationError("Request body needs 'input' or 'messages'")
    return text


class PatternHTTPServer:
    """Starlette app serving a set of executors keyed by route name.

    Example:
        >>> server = PatternHTTPServer(default_executors(backend))
        >>> server.run(port=8000)
    """

    __slots__ = ("_executors", "_settings", "_app")

    def __init__(self, executors: Mapping[str, PatternExecutor], settings: AgentPatternsSettings | None = None) -> None:
        self._executors = dict(executors)
        self._settings = settings or get_settings()
        self._app = self._create_app()

    def _error(self, message: str) -> Response:
        from starlette.responses import JSONResponse

        return JSONResponse({"error": message, "timestamp": datetime.now(timezone.utc).isoformat()},
                            status_code=500)

    def _create_app(self) -> Starlette:
        try:
            from starlette.applications import Starlette
            from starlette.responses import StreamingResponse
            from starlette.routing import Route
        except ImportError as e:
            raise ImportError(
                "HTTP server requires starlette. "
                "Install with: pip install agentpatterns[http]"
            ) from e

        def endpoint(name: str, executor: PatternExecutor):  # type: ignore[no-untyped-def]
            async def handle(request: Request) -> Response:
                try:
                    payload = _request_payload(orjson.loads(await request.body()))
                    run = executor.open(payload)
                except orjson.JSONDecodeError:
                    return self._error("Request body must be valid JSON")
                except InputValidationError as e:
                    log.warning("request rejected", pattern=name, error=e.message)
                    return self._error(e.message)

                frames = cast(AsyncGenerator[StreamFrame, None], aiter(run))
                first: StreamFrame | None = await anext(frames, None)
                if first is None or first.failure is not None:
                    await frames.aclose()
                    message = first.failure.message if first is not None and first.failure else "Request cancelled"
                    log.warning("pattern failed before streaming", pattern=name,
                                correlation_id=run.correlation_id, error=message)
                    return self._error(message)

                adapter = _adapter(run, self._settings.server.wire_format)

                async def replay() -> AsyncIterator[StreamFrame]:
                    yield first
                    async for frame in frames:
                        yield frame

                async def body() -> AsyncIterator[bytes]:
                    try:
                        async for data in encode_frames(replay(), adapter):
                            yield data
                    finally:
                        await frames.aclose()

                headers = {**STREAM_HEADERS, "X-Correlation-Id": run.correlation_id}
                return StreamingResponse(body(), media_type=adapter.media_type, headers=headers)

            return handle

        routes = [Route(f"/api/{name}", endpoint(name, ex), methods=["POST"]) for name, ex in self._executors.items()]
        return Starlette(routes=routes)

    def run(self, host: str | None = None, port: int | None = None) -> None:
        """Start the server with uvicorn (blocking)."""
        try:
            import uvicorn
        except ImportError as e:
            raise ImportError(
                "HTTP server requires uvicorn. "
                "Install with: pip install agentpatterns[http]"
            ) from e

        server = self._settings.server
        uvicorn.run(self._app, host=host or server.host, port=port or server.port,
                    log_level=self._settings.logging.level.lower())

    @property
    def app(self) -> Starlette:
        """ASGI app for embedding in larger applications."""
        return self._app


# ─────────────────────────────────────────────────────────────────────────────
# Factory functions
# ─────────────────────────────────────────────────────────────────────────────


def create_app(executors: Mapping[str, PatternExecutor], settings: AgentPatternsSettings | None = None) -> Starlette:
    """Create the ASGI app without running it.

    Example:
        >>> app = create_app(default_executors(backend))
        >>> main_app.mount("/agents", app)
    """
    return PatternHTTPServer(executors, settings).app


def serve(
    executors: Mapping[str, PatternExecutor] | None = None,
    *,
    settings: AgentPatternsSettings | None = None,
    host: str | None = None,
    port: int | None = None,
) -> None:
    """Serve every pattern over HTTP.

    Without explicit executors, builds the default set on an
    OpenAI-compatible backend configured from settings.
    """
    from agentpatterns.models import OpenAICompatibleInvoker
    from agentpatterns.runtime.agents import default_executors
    from agentpatterns.runtime.observability import configure_logging

    settings = settings or get_settings()
    configure_logging(settings.logging.format, settings.logging.level)
    if executors is None:
        executors = default_executors(OpenAICompatibleInvoker.from_settings(settings.model), settings=settings)
    PatternHTTPServer(executors, settings).run(host, port)
