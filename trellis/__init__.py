"""
Trellis: graph execution engine for LLM-agent pipelines

Nodes are async functions (or objects with ``async process(state, context)``)
that read a typed state and return updates or routing commands. The
executor routes along fixed and conditional edges, checkpoints after every
step, and supports interrupts, per-node caching and streaming.

Example:
    >>> from trellis import StateGraph, MessageState, Message, END, MemorySaver
    >>> from trellis import CheckpointConfig, Complete
    >>>
    >>> async def respond(state):
    ...     return MessageState.with_messages([Message.assistant("hi")])
    >>>
    >>> graph = StateGraph(MessageState)
    >>> graph.add_node("respond", respond)
    >>> graph.add_edge("respond", END)
    >>> graph.set_entry_point("respond")
    >>> compiled = graph.compile(checkpointer=MemorySaver())
    >>>
    >>> result = await compiled.invoke(
    ...     MessageState.with_messages([Message.user("hello")]),
    ...     CheckpointConfig("user-123"),
    ... )
    >>> assert isinstance(result, Complete)
"""

__version__ = "0.1.0"

# Core components
from trellis.core.graph import ExecutionGraph, Edge, ConditionalEdge, START, END
from trellis.core.state import State, Message, MessageState
from trellis.core.command import (
    Command,
    Goto,
    GotoWithUpdate,
    Update,
    End,
    Send,
    SendCommand,
    Resume,
    Interrupt,
    send,
)
from trellis.core.cache import CachePolicy
from trellis.core.executor import CompiledGraph

# Builders
from trellis.builders.state_graph import StateGraph

# Nodes
from trellis.nodes.base import Node, NodeContext, BaseNode, FunctionNode

# Checkpointing
from trellis.checkpoints import Checkpoint, CheckpointConfig, Checkpointer, StateSnapshot
from trellis.backends.memory import MemorySaver
from trellis.backends.sqlite import SQLiteSaver

# Interrupts (human-in-the-loop)
from trellis.interrupts import interrupt, Complete, Interrupted, GraphResult

# Streaming
from trellis.streaming.modes import StreamMode, GraphEvent, MultiGraphEvent
from trellis.streaming.iterator import GraphStream
from trellis.streaming.sse import SSEAdapter

# Errors
from trellis.utils.errors import (
    TrellisError,
    GraphValidationError,
    GraphConfigurationError,
    GraphExecutionError,
    NodeExecutionError,
    IterationLimitError,
    InvalidRouteError,
    StateSerializationError,
    CheckpointError,
    CheckpointNotFoundError,
)

__all__ = [
    # Version
    "__version__",
    # Core
    "ExecutionGraph",
    "Edge",
    "ConditionalEdge",
    "START",
    "END",
    "State",
    "Message",
    "MessageState",
    "CompiledGraph",
    "CachePolicy",
    # Commands
    "Command",
    "Goto",
    "GotoWithUpdate",
    "Update",
    "End",
    "Send",
    "SendCommand",
    "Resume",
    "Interrupt",
    "send",
    # Builders
    "StateGraph",
    # Nodes
    "Node",
    "NodeContext",
    "BaseNode",
    "FunctionNode",
    # Checkpointing
    "Checkpoint",
    "CheckpointConfig",
    "Checkpointer",
    "StateSnapshot",
    "MemorySaver",
    "SQLiteSaver",
    # Interrupts
    "interrupt",
    "Complete",
    "Interrupted",
    "GraphResult",
    # Streaming
    "StreamMode",
    "GraphEvent",
    "MultiGraphEvent",
    "GraphStream",
    "SSEAdapter",
    # Errors
    "TrellisError",
    "GraphValidationError",
    "GraphConfigurationError",
    "GraphExecutionError",
    "NodeExecutionError",
    "IterationLimitError",
    "InvalidRouteError",
    "StateSerializationError",
    "CheckpointError",
    "CheckpointNotFoundError",
]
