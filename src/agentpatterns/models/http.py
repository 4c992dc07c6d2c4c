"""OpenAI-compatible chat-completions backend over httpx.

Works against any server exposing `POST {base_url}/chat/completions` with
JSON-schema response formats and SSE streaming. Transport failures are
mapped onto the provider error taxonomy here; retry, timeout budgeting and
conformance are layered on by ResilientInvoker.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any, Self

import httpx
import orjson

from agentpatterns.foundation.errors import (
    JsonDict,
    ProviderMalformedResponse,
    ProviderRateLimited,
    ProviderRequestRejected,
    ProviderTimeout,
    ProviderUnavailable,
)

from .types import CompletionStatus, GenerationRequest, GenerationResult, Message, ModelProfile, Role, StructuredResult, TextResult

if TYPE_CHECKING:
    from agentpatterns.foundation.config import ModelSettings

_FINISH_STATUS = {"stop": CompletionStatus.COMPLETE, "length": CompletionStatus.TRUNCATED}


def _retry_after(response: httpx.Response) -> float | None:
    try:
        return float(response.headers.get("retry-after", ""))
    except ValueError:
        return None


def raise_for_provider_status(response: httpx.Response, body: str = "") -> None:
    """Map non-2xx responses onto provider errors."""
    code = response.status_code
    if code < 400:
        return
    details: JsonDict = {"status": code, "body": body[:500]}
    if code == 429:
        raise ProviderRateLimited("Provider rate limit exceeded", retry_after=_retry_after(response), details=details)
    if code >= 500:
        raise ProviderUnavailable(f"Provider returned HTTP {code}", details=details)
    raise ProviderRequestRejected(f"Provider rejected request with HTTP {code}", details=details)


def _tools_instruction(request: GenerationRequest) -> str:
    lines = ["You can call these tools. Each takes a JSON object of arguments:"]
    lines += [f"- {t.name}: {t.description} Parameters: {orjson.dumps(t.parameters).decode()}" for t in request.tools]
    return "\n".join(lines)


class OpenAICompatibleInvoker:
    """ModelInvoker backed by an OpenAI-style HTTP API.

    Example:
        >>> backend = OpenAICompatibleInvoker.from_settings(get_settings().model)
        >>> async with backend:
        ...     result = await backend.invoke(GenerationRequest(ModelProfile.FAST, "Hello"))
    """

    __slots__ = ("_base_url", "_api_key", "_models", "_temperature", "_client", "_owns_client")

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        models: dict[ModelProfile, str] | None = None,
        temperature: float = 0.7,
        client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._models = models or {ModelProfile.FAST: "gpt-4o-mini", ModelProfile.COMPLEX: "gpt-4o"}
        self._temperature = temperature
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: ModelSettings, *, client: httpx.AsyncClient | None = None) -> Self:
        return cls(
            settings.base_url,
            api_key=settings.api_key.get_secret_value() if settings.api_key else None,
            models={ModelProfile.FAST: settings.fast_model, ModelProfile.COMPLEX: settings.complex_model},
            temperature=settings.temperature,
            client=client,
            timeout=settings.timeout,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    # ─────────────────────────────────────────────────────────────────
    # Request building
    # ─────────────────────────────────────────────────────────────────

    @property
    def url(self) -> str:
        return f"{self._base_url}/chat/completions"

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def build_body(self, request: GenerationRequest, *, stream: bool) -> JsonDict:
        messages = request.messages()
        if request.tools:
            tool_msg = Message(Role.SYSTEM, _tools_instruction(request))
            messages = [tool_msg, *messages]
        body: JsonDict = {
            "model": self._models[request.profile],
            "messages": [m.to_dict() if m.role is not Role.TOOL else {"role": "user", "content": m.content}
                         for m in messages],
            "temperature": self._temperature,
            "stream": stream,
        }
        if request.schema is not None:
            body["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": request.schema.name, "schema": request.schema.to_json_schema()},
            }
        return body

    # ─────────────────────────────────────────────────────────────────
    # ModelInvoker
    # ─────────────────────────────────────────────────────────────────

    async def invoke(self, request: GenerationRequest) -> GenerationResult:
        try:
            response = await self._client.post(self.url, content=orjson.dumps(self.build_body(request, stream=False)),
                                               headers=self._headers())
        except httpx.TimeoutException as e:
            raise ProviderTimeout(f"Provider request timed out: {e}") from e
        except httpx.TransportError as e:
            raise ProviderUnavailable(f"Network error: {e}") from e
        raise_for_provider_status(response, response.text)

        try:
            payload = orjson.loads(response.content)
            choice = payload["choices"][0]
            text: str = choice["message"]["content"] or ""
        except (orjson.JSONDecodeError, KeyError, IndexError, TypeError) as e:
            raise ProviderMalformedResponse(f"Unexpected completion payload: {e}",
                                            details={"preview": response.text[:200]}) from e
        status = _FINISH_STATUS.get(choice.get("finish_reason") or "stop", CompletionStatus.COMPLETE)
        usage = payload.get("usage") or {}
        if request.schema is None:
            return TextResult(text, status, usage)
        try:
            value: Any = orjson.loads(text)
        except orjson.JSONDecodeError as e:
            raise ProviderMalformedResponse(f"Structured response is not JSON: {e}",
                                            details={"preview": text[:200], "status": status.value}) from e
        return StructuredResult(value, request.schema, status, usage)

    async def invoke_streaming(self, request: GenerationRequest) -> AsyncIterator[str]:
        content = orjson.dumps(self.build_body(request, stream=True))
        try:
            async with self._client.stream("POST", self.url, content=content, headers=self._headers()) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise_for_provider_status(response, body)
                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    data = line[5:].strip()
                    if data == "[DONE]":
                        break
                    if delta := _delta_text(data):
                        yield delta
        except httpx.TimeoutException as e:
            raise ProviderTimeout(f"Provider stream timed out: {e}") from e
        except httpx.TransportError as e:
            raise ProviderUnavailable(f"Network error while streaming: {e}") from e


def _delta_text(data: str) -> str:
    try:
        chunk = orjson.loads(data)
        if not (choices := chunk.get("choices")):
            return ""
        return (choices[0].get("delta") or {}).get("content") or ""
    except (orjson.JSONDecodeError, AttributeError, IndexError) as e:
        raise ProviderMalformedResponse(f"Malformed stream chunk: {e}", details={"preview": data[:200]}) from e
