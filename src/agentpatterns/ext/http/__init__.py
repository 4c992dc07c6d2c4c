"""HTTP transport: Starlette server and httpx client for pattern streams."""

from .client import PatternClient, StreamMetrics

__all__ = [
    "PatternClient", "StreamMetrics",
    "PatternHTTPServer", "create_app", "serve",
]


def __getattr__(name: str):  # type: ignore[no-untyped-def]
    # The server pulls in starlette, an optional extra
    if name in ("PatternHTTPServer", "create_app", "serve", "STREAM_HEADERS"):
        from . import server
        return getattr(server, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
