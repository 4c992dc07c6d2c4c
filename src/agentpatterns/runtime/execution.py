"""Per-invocation execution context."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from agentpatterns.foundation.schema import SchemaSpec
from agentpatterns.runtime.concurrency import CancelSignal
from agentpatterns.runtime.observability import EventContext, NoOpObserver, Observer

if TYPE_CHECKING:
    from agentpatterns.models.types import Message
    from agentpatterns.runtime.convergence import IterationRecord
    from agentpatterns.runtime.tools import ToolCallResult


def new_correlation_id() -> str:
    return uuid.uuid4().hex


@dataclass(slots=True)
class PatternExecution:
    """State owned by exactly one pattern invocation.

    Nothing here is shared across executions: records, tool results and the
    cancel signal live and die with the invocation's stream.

    Attributes:
        pattern: Strategy name (e.g. ``routing``)
        schema: Shape of the final answer
        input: Caller input text (empty for message-based invocations)
        messages: Conversation for message-based invocations
        correlation_id: Id attached to every event of this execution
        cancel: Fired by the caller to stop the execution
        iterations: IterationRecords appended by convergence loops
        tool_results: Results of every tool dispatch
        observer: Event sink
    """

    pattern: str
    schema: SchemaSpec
    input: str = ""
    messages: tuple[Message, ...] = ()
    correlation_id: str = field(default_factory=new_correlation_id)
    cancel: CancelSignal = field(default_factory=CancelSignal)
    iterations: list[IterationRecord] = field(default_factory=list)
    tool_results: list[ToolCallResult] = field(default_factory=list)
    observer: Observer = field(default_factory=NoOpObserver)

    @property
    def context(self) -> EventContext:
        return EventContext(self.correlation_id, self.pattern)

    def record(self, name: str, **attributes: Any) -> None:
        """Emit an event tagged with this execution's identity."""
        self.observer.record_event(self.context, name, attributes)
