"""Streaming modes for Trellis execution.

Each completed node produces one event per requested mode:

- VALUES: full accumulated state after the step's merge
- UPDATES: state as it was before the step's merge (diff it yourself)
- MESSAGES: same payload as VALUES; consumers filter for messages
- DEBUG: same payload as VALUES; consumers render everything
- CUSTOM: merged state plus the payloads a node pushed through
  ``NodeContext.emit()`` (``data`` is None when it pushed nothing)

Example:
    >>> async for event in graph.stream(state, StreamMode.UPDATES):
    ...     print(event.node, event.state)
    >>>
    >>> async for item in graph.stream_modes(state, [StreamMode.VALUES, StreamMode.CUSTOM]):
    ...     print(item.mode, item.event.node)
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar
from datetime import datetime

S = TypeVar("S")


class StreamMode(str, Enum):
    """Available streaming modes for graph execution."""

    VALUES = "values"      # Full state after each node
    UPDATES = "updates"    # State before each node's merge
    MESSAGES = "messages"  # Like VALUES, filtered by the consumer
    DEBUG = "debug"        # Like VALUES, rendered by the consumer
    CUSTOM = "custom"      # State plus node-pushed payloads


@dataclass
class GraphEvent(Generic[S]):
    """Event emitted for one completed node.

    Attributes:
        node: Node that just completed
        state: State snapshot for the stream mode
        data: Payloads emitted by the node (CUSTOM mode only)
        step: Step number within the run
    """

    node: str
    state: S
    data: Any = None
    step: int = 0
    timestamp: Optional[datetime] = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now()


@dataclass
class MultiGraphEvent(Generic[S]):
    """Event tagged with the mode it was produced for."""

    mode: StreamMode
    event: GraphEvent[S]


@dataclass
class StepRecord(Generic[S]):
    """Internal record of one completed node, fanned out into events."""

    node: str
    step: int
    before: S
    after: S
    custom: list = field(default_factory=list)

    def event_for(self, mode: StreamMode) -> GraphEvent[S]:
        """Exactly one event per completed node and mode."""
        if mode == StreamMode.CUSTOM:
            data = list(self.custom) if self.custom else None
            return GraphEvent(node=self.node, state=self.after, data=data, step=self.step)
        if mode == StreamMode.UPDATES:
            return GraphEvent(node=self.node, state=self.before, step=self.step)
        return GraphEvent(node=self.node, state=self.after, step=self.step)
