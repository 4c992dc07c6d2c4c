"""Declarative, immutable description of the shape of a structured result.

A SchemaSpec is built once (usually at import time) and shared by every
execution that produces values of that shape. It serves three purposes:

- Instructing the backend (`to_json_schema` is attached to the request)
- Partial validation of incomplete values during streaming
- Strict validation of the final value

Example:
    >>> review = schema(
    ...     "review",
    ...     field("score", number(minimum=1, maximum=10)),
    ...     field("issues", array_of(string()), required=False),
    ... )
    >>> review.field_names
    ('score', 'issues')
"""

from __future__ import annotations

from dataclasses import dataclass, field as dc_field
from enum import StrEnum

from agentpatterns.foundation.errors import JsonDict


class FieldType(StrEnum):
    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"
    ANY = "any"


@dataclass(frozen=True, slots=True)
class TypeSpec:
    """Type of a single value.

    Attributes:
        kind: Primitive or container kind
        enum: Allowed values for enumerated strings
        minimum: Inclusive lower bound for numbers
        maximum: Inclusive upper bound for numbers
        items: Element type for arrays
        schema: Nested object shape for objects (None = free-form object)
    """

    kind: FieldType
    enum: tuple[str, ...] | None = None
    minimum: float | None = None
    maximum: float | None = None
    items: TypeSpec | None = None
    schema: SchemaSpec | None = None

    def to_json_schema(self) -> JsonDict:
        match self.kind:
            case FieldType.ANY:
                return {}
            case FieldType.ARRAY:
                out: JsonDict = {"type": "array"}
                if self.items is not None:
                    out["items"] = self.items.to_json_schema()
                return out
            case FieldType.OBJECT:
                return self.schema.to_json_schema() if self.schema else {"type": "object"}
        out = {"type": self.kind.value}
        if self.enum:
            out["enum"] = list(self.enum)
        if self.minimum is not None:
            out["minimum"] = self.minimum
        if self.maximum is not None:
            out["maximum"] = self.maximum
        return out


@dataclass(frozen=True, slots=True)
class FieldSpec:
    name: str
    type: TypeSpec
    required: bool = True
    description: str = ""


@dataclass(frozen=True, slots=True)
class SchemaSpec:
    """Ordered set of named fields describing a JSON object."""

    name: str
    fields: tuple[FieldSpec, ...] = ()
    description: str = ""
    _index: dict[str, FieldSpec] = dc_field(default_factory=dict, init=False, repr=False, compare=False, hash=False)

    def __post_init__(self) -> None:
        seen: dict[str, FieldSpec] = {}
        for f in self.fields:
            if f.name in seen:
                raise ValueError(f"Duplicate field '{f.name}' in schema '{self.name}'")
            seen[f.name] = f
        object.__setattr__(self, "_index", seen)

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    @property
    def required_names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.fields if f.required)

    def get(self, name: str) -> FieldSpec | None:
        return self._index.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def to_json_schema(self) -> JsonDict:
        """Render as a JSON Schema object (the grammar handed to backends)."""
        props: JsonDict = {}
        for f in self.fields:
            prop = f.type.to_json_schema()
            if f.description:
                prop = {**prop, "description": f.description}
            props[f.name] = prop
        out: JsonDict = {"type": "object", "properties": props, "required": list(self.required_names)}
        if self.description:
            out["description"] = self.description
        return out


# ─────────────────────────────────────────────────────────────────────────────
# Builders
# ─────────────────────────────────────────────────────────────────────────────


def string() -> TypeSpec:
    return TypeSpec(FieldType.STRING)


def choice(*values: str) -> TypeSpec:
    """Enumerated string."""
    if not values:
        raise ValueError("choice() requires at least one value")
    return TypeSpec(FieldType.STRING, enum=tuple(values))


def integer(*, minimum: float | None = None, maximum: float | None = None) -> TypeSpec:
    return TypeSpec(FieldType.INTEGER, minimum=minimum, maximum=maximum)


def number(*, minimum: float | None = None, maximum: float | None = None) -> TypeSpec:
    return TypeSpec(FieldType.NUMBER, minimum=minimum, maximum=maximum)


def boolean() -> TypeSpec:
    return TypeSpec(FieldType.BOOLEAN)


def any_value() -> TypeSpec:
    return TypeSpec(FieldType.ANY)


def array_of(items: TypeSpec | SchemaSpec) -> TypeSpec:
    return TypeSpec(FieldType.ARRAY, items=object_of(items) if isinstance(items, SchemaSpec) else items)


def object_of(spec: SchemaSpec | None = None) -> TypeSpec:
    return TypeSpec(FieldType.OBJECT, schema=spec)


def field(name: str, type: TypeSpec | SchemaSpec, *, required: bool = True, description: str = "") -> FieldSpec:
    return FieldSpec(name, object_of(type) if isinstance(type, SchemaSpec) else type, required, description)


def schema(name: str, *fields: FieldSpec, description: str = "") -> SchemaSpec:
    return SchemaSpec(name, tuple(fields), description)
