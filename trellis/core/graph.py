"""Core graph data structures for Trellis.

This module holds the immutable topology produced by ``StateGraph.compile()``:
named nodes, fixed edges, conditional edges (with optional path maps for
introspection), interrupt markers, cache policies and deferred markers.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Set, TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from trellis.utils.errors import GraphValidationError

if TYPE_CHECKING:
    from trellis.core.cache import CachePolicy
    from trellis.nodes.base import Node

START = "__start__"
END = "__end__"

RESERVED_NAMES = frozenset({START, END})


class Edge(BaseModel):
    """Unconditional transition between two nodes; ``target`` may be END."""

    source: str
    target: str

    model_config = ConfigDict(frozen=True)


class ConditionalEdge(BaseModel):
    """Transition whose destination is computed from state at run time.

    Attributes:
        source: Source node name
        router: Callable ``(state) -> str`` (may be async) returning a node
            name, END, or a path-map label
        path_map: Optional ``label -> node`` map used for introspection
    """

    source: str
    router: Callable[[Any], Any]
    path_map: Optional[Dict[str, str]] = None

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    def targets(self) -> List[str]:
        """Statically known destinations (empty without a path map)."""
        if not self.path_map:
            return []
        return list(self.path_map.values())


@dataclass(frozen=True)
class ExecutionGraph:
    """Validated, immutable graph topology.

    Attributes:
        state_schema: State type flowing through the graph
        nodes: Mapping of node names to Node instances
        edges: Fixed edges in registration order
        conditional_edges: Conditional edges in registration order
        entry_point: First node executed
        interrupt_before: Nodes to pause before
        interrupt_after: Nodes to pause after
        cache_policies: Memoization settings per node
        deferred_nodes: Nodes flagged as fan-in points
    """

    state_schema: Any
    nodes: Dict[str, "Node"]
    edges: List[Edge]
    conditional_edges: List[ConditionalEdge]
    entry_point: str
    interrupt_before: FrozenSet[str] = frozenset()
    interrupt_after: FrozenSet[str] = frozenset()
    cache_policies: Dict[str, "CachePolicy"] = field(default_factory=dict)
    deferred_nodes: FrozenSet[str] = frozenset()

    def validate(self) -> None:
        """Validate graph topology.

        Checks for:
        - Entry point refers to a registered node
        - Fixed edges reference registered nodes (targets may be END)
        - Conditional edge sources are registered
        - Path-map targets are registered nodes or END
        - Interrupt markers name registered nodes

        Raises:
            GraphValidationError: If validation fails
        """
        if self.entry_point not in self.nodes:
            raise GraphValidationError(f"Entry point node '{self.entry_point}' not found")

        for edge in self.edges:
            if edge.source not in self.nodes:
                raise GraphValidationError(
                    f"Edge references non-existent source node: {edge.source}"
                )
            if edge.target != END and edge.target not in self.nodes:
                raise GraphValidationError(
                    f"Edge references non-existent target node: {edge.target}"
                )

        for ce in self.conditional_edges:
            if ce.source not in self.nodes:
                raise GraphValidationError(
                    f"Conditional edge references non-existent source node: {ce.source}"
                )
            for label, target in (ce.path_map or {}).items():
                if target != END and target not in self.nodes:
                    raise GraphValidationError(
                        f"Conditional edge path_map target '{target}' "
                        f"(label '{label}') not found"
                    )

        for position, names in (("before", self.interrupt_before), ("after", self.interrupt_after)):
            unknown = sorted(name for name in names if name not in self.nodes)
            if unknown:
                raise GraphValidationError(
                    f"interrupt_{position} references unknown nodes: {', '.join(unknown)}"
                )

    def get_node(self, node_id: str) -> "Node":
        """Get a node by name.

        Raises:
            KeyError: If node does not exist
        """
        return self.nodes[node_id]

    def has_node(self, node_id: str) -> bool:
        """Check if a node exists in the graph."""
        return node_id in self.nodes

    def fixed_target(self, source: str) -> Optional[str]:
        """Target of the first fixed edge leaving ``source``."""
        for edge in self.edges:
            if edge.source == source:
                return edge.target
        return None

    def conditional_edge(self, source: str) -> Optional[ConditionalEdge]:
        """First conditional edge leaving ``source``."""
        for ce in self.conditional_edges:
            if ce.source == source:
                return ce
        return None

    def get_children(self, node_id: str) -> List[str]:
        """Statically known successors of a node (fixed and path-map)."""
        children: List[str] = []
        for edge in self.edges:
            if edge.source == node_id and edge.target not in children:
                children.append(edge.target)
        for ce in self.conditional_edges:
            if ce.source == node_id:
                for target in ce.targets():
                    if target not in children:
                        children.append(target)
        return children

    def incoming_edge_count(self, node_id: str) -> int:
        """Count statically declared edges into a node.

        Fixed edges plus path-map entries naming the node. Conditional edges
        without a path map cannot be counted and are excluded.
        """
        count = sum(1 for edge in self.edges if edge.target == node_id)
        for ce in self.conditional_edges:
            count += sum(1 for target in ce.targets() if target == node_id)
        return count

    def is_deferred(self, node_id: str) -> bool:
        return node_id in self.deferred_nodes

    def reachable_nodes(self) -> Set[str]:
        """Nodes statically reachable from the entry point."""
        reachable: Set[str] = set()
        queue = [self.entry_point]

        while queue:
            node_id = queue.pop(0)
            if node_id in reachable or node_id == END:
                continue
            reachable.add(node_id)
            queue.extend(self.get_children(node_id))

        return reachable
