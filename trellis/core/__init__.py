"""Core execution engine components."""

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
from trellis.core.cache import CachePolicy, NodeCache
from trellis.core.executor import CompiledGraph

__all__ = [
    "ExecutionGraph",
    "Edge",
    "ConditionalEdge",
    "START",
    "END",
    "State",
    "Message",
    "MessageState",
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
    "CachePolicy",
    "NodeCache",
    "CompiledGraph",
]
