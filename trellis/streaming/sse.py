"""Server-Sent Events (SSE) adapter for web streaming.

This module converts graph stream events into SSE frames for web
applications.
"""

from typing import Any, AsyncIterator, Dict, Optional, Union
import json

from trellis.core.state import serialize_state
from trellis.streaming.modes import GraphEvent, MultiGraphEvent

StreamEvent = Union[GraphEvent, MultiGraphEvent]


class SSEAdapter:
    """Adapt graph stream events to Server-Sent Events format.

    ``GraphEvent`` frames are named ``node`` (or ``event_name``);
    ``MultiGraphEvent`` frames are named after their stream mode.

    Example with FastAPI:
        >>> from fastapi import FastAPI
        >>>
        >>> @app.post("/runs/stream")
        >>> async def run_stream(request: RunRequest):
        ...     stream = graph.stream_modes(
        ...         request.state, [StreamMode.VALUES, StreamMode.CUSTOM],
        ...         CheckpointConfig(request.thread_id),
        ...     )
        ...     return SSEAdapter().to_streaming_response(stream)
    """

    def __init__(self, event_name: Optional[str] = None):
        """Initialize SSE adapter.

        Args:
            event_name: Optional default event name for plain GraphEvents
        """
        self.event_name = event_name

    async def event_generator(self, event_stream: AsyncIterator[StreamEvent]) -> AsyncIterator[str]:
        """Generate SSE-formatted frames from a graph stream."""
        async for event in event_stream:
            yield self.format_event(event)

    def event_type(self, event: StreamEvent) -> str:
        if isinstance(event, MultiGraphEvent):
            return event.mode.value
        return self.event_name or "node"

    def event_data(self, event: StreamEvent) -> Dict[str, Any]:
        """JSON-compatible payload of an event."""
        inner = event.event if isinstance(event, MultiGraphEvent) else event
        data = {
            "node": inner.node,
            "step": inner.step,
            "state": serialize_state(inner.state),
            "timestamp": inner.timestamp.isoformat() if inner.timestamp else None,
        }
        if inner.data is not None:
            data["data"] = serialize_state(inner.data)
        return data

    def format_event(self, event: StreamEvent) -> str:
        """Format a single event as an SSE frame.

        Returns:
            ``event: <name>\\ndata: <json>\\n\\n``
        """
        lines = [
            f"event: {self.event_type(event)}",
            f"data: {json.dumps(self.event_data(event))}",
            "",
        ]
        return "\n".join(lines) + "\n"

    def to_sse_response(self, event_stream: AsyncIterator[StreamEvent]) -> "EventSourceResponse":
        """Convert a graph stream to an sse-starlette EventSourceResponse.

        Raises:
            ImportError: If sse-starlette is not installed
        """
        try:
            from sse_starlette.sse import EventSourceResponse
        except ImportError:
            raise ImportError(
                "sse-starlette not installed. "
                "Install with: pip install trellis[server]"
            )

        async def event_generator():
            async for event in event_stream:
                yield {
                    "event": self.event_type(event),
                    "data": json.dumps(self.event_data(event)),
                }

        return EventSourceResponse(event_generator())

    def to_streaming_response(self, event_stream: AsyncIterator[StreamEvent]) -> "StreamingResponse":
        """Convert a graph stream to a FastAPI StreamingResponse.

        Raises:
            ImportError: If FastAPI is not installed
        """
        try:
            from fastapi.responses import StreamingResponse
        except ImportError:
            raise ImportError(
                "FastAPI not installed. Install with: pip install trellis[server]"
            )

        return StreamingResponse(
            self.event_generator(event_stream),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",  # Disable nginx buffering
            },
        )
