"""Pytest configuration and fixtures for Trellis tests."""

from typing import List, Optional

import pytest
from pydantic import BaseModel, Field

from trellis import CheckpointConfig, MemorySaver


class TraceState(BaseModel):
    """Test state: an append-only trace plus a summed counter."""

    trace: List[str] = Field(default_factory=list)
    count: int = 0

    def merge(self, other: "TraceState") -> None:
        self.trace.extend(other.trace)
        self.count += other.count


class TicketState(BaseModel):
    """Support-ticket state used by the routing scenarios."""

    text: str = ""
    priority: Optional[str] = None
    trace: List[str] = Field(default_factory=list)

    def merge(self, other: "TicketState") -> None:
        if other.text:
            self.text = other.text
        if other.priority is not None:
            self.priority = other.priority
        self.trace.extend(other.trace)


def tracer(name: str):
    """Node function appending ``name`` to the trace."""

    async def node(state: TraceState) -> TraceState:
        return TraceState(trace=[name])

    node.__name__ = name
    return node


@pytest.fixture
def saver():
    """Create a fresh in-memory checkpointer."""
    return MemorySaver()


@pytest.fixture
def config():
    """Create a checkpoint config for a test thread."""
    return CheckpointConfig("test-thread")
