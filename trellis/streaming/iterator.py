"""AsyncIterator streaming interface for graph execution."""

from typing import Any, AsyncIterator, List, Optional, Sequence, TYPE_CHECKING

from trellis.streaming.modes import MultiGraphEvent, StepRecord, StreamMode

if TYPE_CHECKING:
    from trellis.checkpoints import CheckpointConfig
    from trellis.core.executor import CompiledGraph
    from trellis.interrupts import GraphResult


class GraphStream:
    """AsyncIterator over the events of one graph run.

    Drives the same loop as ``invoke``. With a single mode it yields
    ``GraphEvent`` objects; when created by ``stream_modes`` it yields one
    ``MultiGraphEvent`` per (completed node, requested mode). Once exhausted,
    ``result`` holds the ``Complete``/``Interrupted`` outcome. A node error
    is raised from the iterator after the events already produced.

    Example:
        >>> stream = graph.stream(state, StreamMode.VALUES)
        >>> async for event in stream:
        ...     print(event.node)
        >>> stream.result
        Complete(state=...)
    """

    def __init__(
        self,
        graph: "CompiledGraph",
        input_data: Any,
        modes: Sequence[StreamMode],
        config: Optional["CheckpointConfig"] = None,
        multiplexed: bool = False,
    ):
        """Initialize stream iterator.

        Args:
            graph: Compiled graph to run
            input_data: Initial state, ``Resume`` or None
            modes: Requested stream modes
            config: Optional checkpoint config
            multiplexed: Wrap events in MultiGraphEvent
        """
        if not modes:
            raise ValueError("At least one stream mode is required")
        self.graph = graph
        self.input_data = input_data
        self.modes = [StreamMode(mode) for mode in modes]
        self.config = config
        self.multiplexed = multiplexed
        self.result: Optional["GraphResult"] = None

    def __aiter__(self) -> AsyncIterator[Any]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Any]:
        async for item in self.graph._execute(self.input_data, self.config):
            if not isinstance(item, StepRecord):
                self.result = item
                continue
            for mode in self.modes:
                event = item.event_for(mode)
                if self.multiplexed:
                    yield MultiGraphEvent(mode=mode, event=event)
                else:
                    yield event

    async def collect(self) -> List[Any]:
        """Collect all events into a list."""
        events = []
        async for event in self:
            events.append(event)
        return events

    async def get_final_state(self) -> Any:
        """Stream all events and return the final state."""
        async for _ in self:
            pass
        return self.result.state if self.result is not None else None
