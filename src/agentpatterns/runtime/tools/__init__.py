"""Tool registration and dispatch."""

from .calculator import CALCULATOR_PARAMS, calculator, evaluate
from .router import Handler, ToolCallRequest, ToolCallResult, ToolDescriptor, ToolInvocationRouter, tool

__all__ = [
    "ToolInvocationRouter", "ToolDescriptor", "ToolCallRequest", "ToolCallResult", "Handler", "tool",
    "calculator", "evaluate", "CALCULATOR_PARAMS",
]
