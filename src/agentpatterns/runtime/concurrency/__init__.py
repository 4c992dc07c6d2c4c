"""Structured concurrency primitives: task groups, cancellation, thread interop."""

from .cancel import CancelSignal
from .interop import to_thread
from .stream import timeout_stream
from .task import TaskGroup, TaskHandle, TaskState, checkpoint

__all__ = [
    "TaskGroup", "TaskHandle", "TaskState", "checkpoint",
    "CancelSignal", "to_thread", "timeout_stream",
]
