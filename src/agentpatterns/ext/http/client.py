"""HTTP client mirroring the server's frame stream.

The client posts to a pattern endpoint and rebuilds StreamFrames from the
response: text-wire bodies are fed through a StreamReconciler, NDJSON bodies
are decoded line by line. Transfer statistics land in StreamMetrics.

Example:
    >>> async with PatternClient("http://localhost:8000") as client:
    ...     async for frame in client.stream("routing", RoutingStrategy.result_schema, "Refund please"):
    ...         print(frame.payload)
    ...     print(client.metrics.duration_ms)
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Self

import httpx
import orjson

from agentpatterns.foundation.errors import (
    Failure,
    JsonDict,
    ProviderError,
    ProviderMalformedResponse,
    ProviderRequestRejected,
    ProviderTimeout,
    ProviderUnavailable,
)
from agentpatterns.foundation.schema import SchemaSpec
from agentpatterns.io.streaming import StreamFrame, StreamReconciler, get_codec


@dataclass(slots=True)
class StreamMetrics:
    """Transfer statistics for one streamed response."""

    start: float = 0.0
    end: float | None = None
    chunks: int = 0
    bytes: int = 0

    @property
    def duration_ms(self) -> float | None:
        return None if self.end is None else round((self.end - self.start) * 1000, 2)

    def to_dict(self) -> JsonDict:
        return {"chunks": self.chunks, "bytes": self.bytes, "duration_ms": self.duration_ms}


def _frame_from_line(line: str) -> StreamFrame:
    try:
        data = get_codec().decode(line)
        failure = Failure.model_validate(data["failure"]) if data.get("failure") else None
        return StreamFrame(data["sequence"], data.get("payload"), bool(data.get("terminal")), failure)
    except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        raise ProviderMalformedResponse(f"Malformed NDJSON frame: {e}", details={"preview": line[:200]}) from e


class PatternClient:
    """Consumes pattern endpoints served by PatternHTTPServer."""

    __slots__ = ("_base_url", "_client", "_owns_client", "metrics")

    def __init__(self, base_url: str, *, client: httpx.AsyncClient | None = None, timeout: float = 120.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self.metrics = StreamMetrics()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    async def stream(
        self,
        pattern: str,
        schema: SchemaSpec,
        input: str | None = None,  # noqa: A002
        *,
        messages: Sequence[Mapping[str, Any]] | None = None,
    ) -> AsyncIterator[StreamFrame]:
        """Post to ``/api/{pattern}`` and yield frames, terminal last.

        Raises:
            ProviderRequestRejected: the route refused the request (4xx)
            ProviderError: the server failed before streaming (bad input or a
                failure on the first model call), carrying its message and status
            ProviderTimeout: the request timed out
            ProviderUnavailable: network failure
        """
        body: JsonDict = {"messages": list(messages)} if messages is not None else {"input": input}
        self.metrics = metrics = StreamMetrics(start=time.perf_counter())
        url = f"{self._base_url}/api/{pattern}"
        try:
            async with self._client.stream("POST", url, content=orjson.dumps(body),
                                           headers={"Content-Type": "application/json"}) as response:
                if response.status_code != 200:
                    raw = await response.aread()
                    metrics.end = time.perf_counter()
                    raise _status_error(response.status_code, _error_message(raw, response.status_code))

                async def chunks() -> AsyncIterator[str]:
                    async for text in response.aiter_text():
                        metrics.chunks += 1
                        metrics.bytes += len(text.encode())
                        yield text

                if response.headers.get("content-type", "").startswith("application/x-ndjson"):
                    async for frame in _ndjson_frames(chunks()):
                        yield frame
                else:
                    async for frame in StreamReconciler(schema).reconcile(chunks()):
                        yield frame
        except httpx.TimeoutException as e:
            raise ProviderTimeout(f"Pattern request timed out: {e}") from e
        except httpx.TransportError as e:
            raise ProviderUnavailable(f"Network error while streaming: {e}") from e
        finally:
            if metrics.end is None:
                metrics.end = time.perf_counter()


async def _ndjson_frames(chunks: AsyncIterator[str]) -> AsyncIterator[StreamFrame]:
    pending = ""
    async for text in chunks:
        pending += text
        *lines, pending = pending.split("\n")
        for line in lines:
            if line.strip():
                yield _frame_from_line(line)
    if pending.strip():
        yield _frame_from_line(pending)


def _error_message(raw: bytes, status: int) -> str:
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError:
        return f"HTTP {status}"
    return str(data.get("error") or f"HTTP {status}") if isinstance(data, dict) else f"HTTP {status}"


def _status_error(status: int, message: str) -> ProviderError:
    details: JsonDict = {"status": status}
    if 400 <= status < 500:
        return ProviderRequestRejected(message, details=details)
    return ProviderError(message, details=details)
