"""Schema declarations and the shared strict/partial validator."""

from .spec import (
    FieldSpec,
    FieldType,
    SchemaSpec,
    TypeSpec,
    any_value,
    array_of,
    boolean,
    choice,
    field,
    integer,
    number,
    object_of,
    schema,
    string,
)
from .validate import conform, is_valid, violations

__all__ = [
    "FieldType", "TypeSpec", "FieldSpec", "SchemaSpec",
    "string", "choice", "integer", "number", "boolean", "any_value",
    "array_of", "object_of", "field", "schema",
    "conform", "violations", "is_valid",
]
