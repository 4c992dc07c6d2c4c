"""orjson codec for NDJSON frames.

Usage:
    >>> get_codec().encode_line({"sequence": 0, "terminal": True})
    b'{"sequence":0,"terminal":true}\n'
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import orjson

if TYPE_CHECKING:
    from agentpatterns.foundation.errors import JsonValue


class OrjsonCodec:
    """orjson codec: native datetime/uuid support, UTC `Z` suffix."""

    __slots__ = ()
    name = "orjson"
    content_type = "application/json"

    def encode(self, data: JsonValue) -> bytes:
        return orjson.dumps(data, option=orjson.OPT_UTC_Z)

    def encode_line(self, data: JsonValue) -> bytes:
        return orjson.dumps(data, option=orjson.OPT_UTC_Z | orjson.OPT_APPEND_NEWLINE)

    def decode(self, data: bytes | str) -> JsonValue:
        return orjson.loads(data)


_orjson = OrjsonCodec()


def get_codec() -> OrjsonCodec:
    return _orjson
