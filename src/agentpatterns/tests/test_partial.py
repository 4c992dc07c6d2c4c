"""Tests for partial JSON repair and prefix-consistent serialization."""

from __future__ import annotations

import orjson
import pytest

from agentpatterns.io.streaming import UNPARSEABLE, open_serialization, parse_partial, repair


# ═════════════════════════════════════════════════════════════════════════════
# Repair
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize(("text", "expected"), [
    ('{"title": "Hel', {"title": "Hel"}),
    ('{"tit', {}),
    ('{"title": "Hi", ', {"title": "Hi"}),
    ('{"title": "Hi", "n": ', {"title": "Hi"}),
    ('{"a": [1, 2', {"a": [1, 2]}),
    ('{"a": [1, tr', {"a": [1]}),
    ('{"a": {"b": {"c": "d', {"a": {"b": {"c": "d"}}}),
    ('{"n": 1.', {"n": 1}),
    ('{"n": -', {}),
    ('{"ok": true', {"ok": True}),
    ('[', []),
])
def test_parse_partial_recovers_prefix(text: str, expected: object) -> None:
    assert parse_partial(text) == expected


def test_partial_escape_is_dropped() -> None:
    assert parse_partial('{"s": "a\\') == {"s": "a"}
    assert parse_partial('{"s": "a\\u00') == {"s": "a"}


def test_escaped_quote_does_not_close_string() -> None:
    assert parse_partial('{"s": "say \\"hi') == {"s": 'say "hi'}


@pytest.mark.parametrize("text", ['{"a": 1}}', '{"a" 1', "x", '{"a": 1] ', '{"a": nul l'])
def test_invalid_prefix_is_unparseable(text: str) -> None:
    assert parse_partial(text) is UNPARSEABLE


def test_empty_text_is_unparseable() -> None:
    assert parse_partial("") is UNPARSEABLE
    assert repair("   ") is None


def test_unparseable_is_falsy() -> None:
    assert not UNPARSEABLE
    assert repr(UNPARSEABLE) == "UNPARSEABLE"


def test_every_prefix_of_a_document_parses_or_is_skipped() -> None:
    doc = orjson.dumps({"title": "Hello", "items": [1, 22, {"k": "v"}], "done": False}).decode()
    for i in range(1, len(doc) + 1):
        value = parse_partial(doc[:i])
        assert value is UNPARSEABLE or isinstance(value, dict)
    assert parse_partial(doc) == orjson.loads(doc)


# ═════════════════════════════════════════════════════════════════════════════
# Open Serialization
# ═════════════════════════════════════════════════════════════════════════════


def test_open_serialization_strips_closers() -> None:
    assert open_serialization({"title": "Hi"}) == '{"title":"Hi'
    assert open_serialization({"a": [1, 2]}) == '{"a":[1,2'


def test_open_serialization_is_prefix_of_extension() -> None:
    before = {"title": "Hel"}
    after = {"title": "Hello", "content": "World"}
    assert orjson.dumps(after).decode().startswith(open_serialization(before))


def test_open_serialization_round_trips_through_parse_partial() -> None:
    value = {"reviews": {"security": {"score": 8}}, "summary": "ok"}
    assert parse_partial(open_serialization(value)) == value
