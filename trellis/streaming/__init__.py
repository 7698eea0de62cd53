"""Streaming adapters for graph runs."""

from trellis.streaming.modes import StreamMode, GraphEvent, MultiGraphEvent
from trellis.streaming.iterator import GraphStream
from trellis.streaming.sse import SSEAdapter

__all__ = [
    "StreamMode",
    "GraphEvent",
    "MultiGraphEvent",
    "GraphStream",
    "SSEAdapter",
]
