"""Node protocol and built-in node implementations."""

from trellis.nodes.base import Node, NodeContext, BaseNode, FunctionNode, as_node

__all__ = [
    "Node",
    "NodeContext",
    "BaseNode",
    "FunctionNode",
    "as_node",
]
