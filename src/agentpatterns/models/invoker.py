"""The ModelInvoker seam between patterns and backends."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

from .types import GenerationRequest, GenerationResult


@runtime_checkable
class ModelInvoker(Protocol):
    """A model backend.

    `invoke` returns the whole result. For a request with a schema the
    result is a StructuredResult whose value the backend *believes* conforms;
    conformance is only guaranteed after ResilientInvoker's strict pass.

    `invoke_streaming` yields raw text deltas. The sequence is finite, not
    restartable, and carries no framing: the concatenation of all deltas is
    the complete response text.
    """

    async def invoke(self, request: GenerationRequest) -> GenerationResult: ...

    def invoke_streaming(self, request: GenerationRequest) -> AsyncIterator[str]: ...
