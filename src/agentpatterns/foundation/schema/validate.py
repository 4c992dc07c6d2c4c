"""Shared validator for SchemaSpec values.

One routine, two modes:

- strict: every required field present, every type, enum and bound enforced
- partial: for values still being streamed. Present fields must type-check,
  absent required fields are tolerated, an enum value may be a prefix of an
  allowed value, and numeric bounds are deferred to the strict pass.

Unknown keys are dropped from the returned value in both modes.
"""

from __future__ import annotations

from typing import Any

from agentpatterns.foundation.errors import SchemaViolation

from .spec import FieldType, SchemaSpec, TypeSpec


def _is_integer(v: object) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def _is_number(v: object) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _check(value: Any, spec: TypeSpec, partial: bool, path: str, errors: list[str]) -> Any:
    match spec.kind:
        case FieldType.ANY:
            return value
        case FieldType.STRING:
            if not isinstance(value, str):
                errors.append(f"{path}: expected string, got {type(value).__name__}")
                return None
            if spec.enum and value not in spec.enum:
                if not (partial and any(e.startswith(value) for e in spec.enum)):
                    errors.append(f"{path}: '{value}' is not one of {list(spec.enum)}")
            return value
        case FieldType.BOOLEAN:
            if not isinstance(value, bool):
                errors.append(f"{path}: expected boolean, got {type(value).__name__}")
            return value
        case FieldType.INTEGER | FieldType.NUMBER:
            ok = _is_integer(value) if spec.kind is FieldType.INTEGER else _is_number(value)
            # 3.0 from a JSON parser is still an integer value
            if not ok and spec.kind is FieldType.INTEGER and isinstance(value, float) and value.is_integer():
                ok, value = True, int(value)
            if not ok:
                errors.append(f"{path}: expected {spec.kind.value}, got {type(value).__name__}")
                return value
            if not partial:
                if spec.minimum is not None and value < spec.minimum:
                    errors.append(f"{path}: {value} is below minimum {spec.minimum}")
                if spec.maximum is not None and value > spec.maximum:
                    errors.append(f"{path}: {value} is above maximum {spec.maximum}")
            return value
        case FieldType.ARRAY:
            if not isinstance(value, list):
                errors.append(f"{path}: expected array, got {type(value).__name__}")
                return None
            if spec.items is None:
                return list(value)
            return [_check(item, spec.items, partial, f"{path}[{i}]", errors) for i, item in enumerate(value)]
        case FieldType.OBJECT:
            if not isinstance(value, dict):
                errors.append(f"{path}: expected object, got {type(value).__name__}")
                return None
            if spec.schema is None:
                return dict(value)
            return _check_object(value, spec.schema, partial, path, errors)
    raise AssertionError(f"unhandled kind {spec.kind}")


def _check_object(value: dict[str, Any], schema: SchemaSpec, partial: bool, path: str, errors: list[str]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for f in schema.fields:
        sub = f"{path}.{f.name}"
        if f.name not in value or value[f.name] is None:
            if f.required and not partial:
                errors.append(f"{sub}: required field missing")
            continue
        out[f.name] = _check(value[f.name], f.type, partial, sub, errors)
    return out


def violations(value: Any, spec: SchemaSpec | TypeSpec, *, partial: bool = False) -> list[str]:
    """List every violation of `spec` by `value` (empty when conforming)."""
    errors: list[str] = []
    conform_into(value, spec, partial, errors)
    return errors


def conform_into(value: Any, spec: SchemaSpec | TypeSpec, partial: bool, errors: list[str]) -> Any:
    if isinstance(spec, SchemaSpec):
        if not isinstance(value, dict):
            errors.append(f"$: expected object '{spec.name}', got {type(value).__name__}")
            return None
        return _check_object(value, spec, partial, "$", errors)
    return _check(value, spec, partial, "$", errors)


def conform(value: Any, spec: SchemaSpec | TypeSpec, *, partial: bool = False) -> Any:
    """Validate `value` against `spec` and return the cleaned value.

    Args:
        value: Parsed JSON value
        spec: Schema (object) or a bare TypeSpec
        partial: Validate as an incomplete, still-streaming value

    Raises:
        SchemaViolation: listing every violation found
    """
    errors: list[str] = []
    cleaned = conform_into(value, spec, partial, errors)
    if errors:
        name = spec.name if isinstance(spec, SchemaSpec) else spec.kind.value
        mode = "partial" if partial else "strict"
        raise SchemaViolation(f"{name}: {errors[0]}" + (f" (+{len(errors) - 1} more)" if len(errors) > 1 else ""),
                              violations=errors, details={"schema": name, "mode": mode})
    return cleaned


def is_valid(value: Any, spec: SchemaSpec | TypeSpec, *, partial: bool = False) -> bool:
    return not violations(value, spec, partial=partial)
