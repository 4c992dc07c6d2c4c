"""Arithmetic calculator tool.

Evaluates `+ - * / // % **` and unary minus over numeric literals by walking
the expression AST; names, calls and attribute access are rejected.
"""

from __future__ import annotations

import ast
import operator as op
from typing import Any

from agentpatterns.foundation.errors import JsonDict, ToolExecutionError
from agentpatterns.foundation.schema import field, schema, string

from .router import ToolDescriptor

_OPS: dict[type[ast.AST], Any] = {
    ast.Add: op.add,
    ast.Sub: op.sub,
    ast.Mult: op.mul,
    ast.Div: op.truediv,
    ast.FloorDiv: op.floordiv,
    ast.Mod: op.mod,
    ast.Pow: op.pow,
    ast.USub: op.neg,
    ast.UAdd: op.pos,
}

# Upper bound on integer result size, checked before the operation runs
_MAX_BITS = 4096

CALCULATOR_PARAMS = schema(
    "calculate",
    field("expression", string(), description="Arithmetic expression, e.g. (2 + 3) * 4"),
)


def _eval(node: ast.AST) -> int | float:
    match node:
        case ast.Constant(value=bool()):
            raise ValueError("booleans are not numbers")
        case ast.Constant(value=int() | float() as value):
            return value
        case ast.UnaryOp(op=operator, operand=operand) if type(operator) in _OPS:
            return _OPS[type(operator)](_eval(operand))
        case ast.BinOp(left=left, op=operator, right=right) if type(operator) in _OPS:
            lhs, rhs = _eval(left), _eval(right)
            _check_size(operator, lhs, rhs)
            return _OPS[type(operator)](lhs, rhs)
    raise ValueError(f"unsupported syntax: {type(node).__name__}")


def _check_size(operator: ast.operator, lhs: int | float, rhs: int | float) -> None:
    """Reject integer products and powers whose result would exceed _MAX_BITS.

    Float operands overflow on their own (OverflowError) and are left alone.
    """
    if not (isinstance(lhs, int) and isinstance(rhs, int)):
        return
    match operator:
        case ast.Pow() if rhs > 0 and abs(lhs) > 1:
            bits = abs(lhs).bit_length() * rhs
        case ast.Mult():
            bits = abs(lhs).bit_length() + abs(rhs).bit_length()
        case _:
            return
    if bits > _MAX_BITS:
        raise ValueError(f"result too large (about {bits} bits, limit {_MAX_BITS})")


def evaluate(expression: str) -> str:
    """Evaluate `expression` and format the result (``2.0`` renders as ``2``)."""
    try:
        value = _eval(ast.parse(expression.strip(), mode="eval").body)
    except (SyntaxError, ValueError, ZeroDivisionError, OverflowError) as e:
        raise ToolExecutionError(f"Cannot evaluate {expression!r}: {e}", details={"expression": expression}) from e
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def _handle(arguments: JsonDict) -> JsonDict:
    return {"result": evaluate(arguments["expression"])}


def calculator(name: str = "calculate") -> ToolDescriptor:
    return ToolDescriptor(
        name=name,
        description="Evaluate an arithmetic expression and return the result as a string.",
        parameters=CALCULATOR_PARAMS,
        handler=_handle,
    )
