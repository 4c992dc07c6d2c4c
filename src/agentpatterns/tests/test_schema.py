"""Tests for SchemaSpec declarations and the shared conform routine.

Validates:
- Strict mode: required fields, types, enums, bounds
- Partial mode: tolerance for values still being streamed
- Unknown keys dropped, field order follows the schema
"""

from __future__ import annotations

import pytest

from agentpatterns.foundation.errors import SchemaViolation
from agentpatterns.foundation.schema import (
    array_of,
    boolean,
    choice,
    conform,
    field,
    integer,
    is_valid,
    number,
    object_of,
    schema,
    string,
    violations,
)

REVIEW = schema(
    "review",
    field("title", string()),
    field("score", number(minimum=1, maximum=10)),
    field("status", choice("processing", "complete")),
    field("tags", array_of(string()), required=False),
    field("meta", object_of(), required=False),
)


# ═════════════════════════════════════════════════════════════════════════════
# Strict Mode
# ═════════════════════════════════════════════════════════════════════════════


def test_strict_accepts_conforming_value() -> None:
    value = {"title": "Hi", "score": 7, "status": "complete", "tags": ["a"]}
    assert conform(value, REVIEW) == value


def test_strict_reports_missing_required_field() -> None:
    with pytest.raises(SchemaViolation) as exc:
        conform({"title": "Hi", "status": "complete"}, REVIEW)
    assert exc.value.violations == ["$.score: required field missing"]


def test_strict_enforces_bounds() -> None:
    errors = violations({"title": "x", "score": 11, "status": "complete"}, REVIEW)
    assert errors == ["$.score: 11 is above maximum 10"]


def test_strict_rejects_unknown_enum_value() -> None:
    assert not is_valid({"title": "x", "score": 5, "status": "comp"}, REVIEW)


def test_strict_collects_every_violation() -> None:
    errors = violations({"title": 3, "score": "high", "status": "done"}, REVIEW)
    assert len(errors) == 3


def test_booleans_are_not_numbers() -> None:
    assert violations(True, number()) == ["$: expected number, got bool"]
    assert is_valid(True, boolean())


def test_integral_float_counts_as_integer() -> None:
    assert conform(3.0, integer()) == 3
    assert not is_valid(3.5, integer())


def test_null_counts_as_absent() -> None:
    assert conform({"title": "x", "score": 2, "status": "complete", "tags": None}, REVIEW) == {
        "title": "x", "score": 2, "status": "complete"}


# ═════════════════════════════════════════════════════════════════════════════
# Partial Mode
# ═════════════════════════════════════════════════════════════════════════════


def test_partial_tolerates_missing_required_fields() -> None:
    assert conform({"title": "H"}, REVIEW, partial=True) == {"title": "H"}


def test_partial_accepts_enum_prefix() -> None:
    assert conform({"status": "proc"}, REVIEW, partial=True) == {"status": "proc"}
    assert not is_valid({"status": "x"}, REVIEW, partial=True)


def test_partial_defers_numeric_bounds() -> None:
    # "10" may still be on its way to "100" or back down; only the final value is bounded
    assert is_valid({"score": 100}, REVIEW, partial=True)


def test_partial_still_checks_types() -> None:
    with pytest.raises(SchemaViolation) as exc:
        conform({"title": 5}, REVIEW, partial=True)
    assert exc.value.details["mode"] == "partial"


# ═════════════════════════════════════════════════════════════════════════════
# Shape
# ═════════════════════════════════════════════════════════════════════════════


def test_unknown_keys_are_dropped() -> None:
    assert conform({"extra": 1, "title": "t"}, REVIEW, partial=True) == {"title": "t"}


def test_result_follows_schema_field_order() -> None:
    value = conform({"status": "complete", "score": 3, "title": "t"}, REVIEW)
    assert list(value) == ["title", "score", "status"]


def test_nested_schema_paths() -> None:
    outer = schema("outer", field("inner", schema("inner", field("n", integer()))))
    assert violations({"inner": {"n": "x"}}, outer) == ["$.inner.n: expected integer, got str"]


def test_array_item_paths() -> None:
    assert violations(["a", 1], array_of(string())) == ["$[1]: expected string, got int"]


def test_json_schema_export() -> None:
    exported = REVIEW.to_json_schema()
    assert exported["type"] == "object"
    assert exported["required"] == ["title", "score", "status"]
    assert exported["properties"]["status"]["enum"] == ["processing", "complete"]
