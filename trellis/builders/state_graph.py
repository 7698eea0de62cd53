"""Declarative graph builder.

This module provides a fluent API for building graphs programmatically:
register nodes, wire fixed and conditional edges, mark interrupts and
cached or deferred nodes, then ``compile()`` into an executable graph.
"""

from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Set, Type, TypeVar
import logging

from trellis.checkpoints import Checkpointer
from trellis.core.cache import CachePolicy
from trellis.core.executor import CompiledGraph
from trellis.core.graph import END, RESERVED_NAMES, START, ConditionalEdge, Edge, ExecutionGraph
from trellis.core.state import is_state_type
from trellis.nodes.base import Node, as_node
from trellis.utils.errors import GraphValidationError

logger = logging.getLogger(__name__)

S = TypeVar("S")


class StateGraph(Generic[S]):
    """Declarative graph builder.

    Every builder method returns ``self`` for chaining.

    Example:
        >>> graph = StateGraph(MessageState)
        >>> graph.add_node("classify", classify)
        >>> graph.add_node("process", process)
        >>> graph.add_edge("classify", "process")
        >>> graph.add_edge("process", END)
        >>> graph.set_entry_point("classify")
        >>> compiled = graph.compile(checkpointer=MemorySaver())
    """

    def __init__(self, state_schema: Type[S]):
        """Initialize empty graph builder.

        Args:
            state_schema: State type flowing through the graph; must define
                ``merge(self, other)``
        """
        self.state_schema = state_schema
        self._nodes: Dict[str, Node] = {}
        self._edges: List[Edge] = []
        self._conditional_edges: List[ConditionalEdge] = []
        self._entry_point: Optional[str] = None
        self._interrupt_before: Set[str] = set()
        self._interrupt_after: Set[str] = set()
        self._cache_policies: Dict[str, CachePolicy] = {}
        self._deferred: Set[str] = set()

    def add_node(self, name: str, node: Any) -> "StateGraph[S]":
        """Add a node to the graph.

        Args:
            name: Unique node name
            node: A ``Node`` (anything with ``async process(state, context)``)
                or a plain sync/async callable, wrapped in ``FunctionNode``

        Returns:
            Self for method chaining

        Raises:
            GraphValidationError: If the name is reserved or already taken
        """
        if name in RESERVED_NAMES:
            raise GraphValidationError(f"Node name '{name}' is reserved")
        if name in self._nodes:
            raise GraphValidationError(f"Node '{name}' already exists")
        try:
            self._nodes[name] = as_node(node)
        except TypeError as e:
            raise GraphValidationError(f"Cannot add node '{name}': {e}") from e
        return self

    def add_node_with_cache(self, name: str, node: Any, cache_policy: CachePolicy) -> "StateGraph[S]":
        """Add a node whose outputs are memoized per input state.

        Example:
            >>> graph.add_node_with_cache("embed", embed, CachePolicy(ttl=300))
        """
        self.add_node(name, node)
        self._cache_policies[name] = cache_policy
        return self

    def add_deferred_node(self, name: str, node: Any) -> "StateGraph[S]":
        """Add a node flagged as a fan-in point for several branches."""
        self.add_node(name, node)
        self._deferred.add(name)
        return self

    def add_edge(self, source: str, target: str) -> "StateGraph[S]":
        """Add a direct edge between two nodes.

        ``target`` may be END. An edge from START sets the entry point.
        """
        if source == START:
            return self.set_entry_point(target)
        self._edges.append(Edge(source=source, target=target))
        return self

    def add_conditional_edges(
        self,
        source: str,
        router: Callable[[S], Any],
    ) -> "StateGraph[S]":
        """Add a router consulted when ``source`` has no fixed edge.

        Args:
            source: Source node name
            router: ``router(state) -> str`` (sync or async) returning the
                next node name or END
        """
        self._conditional_edges.append(ConditionalEdge(source=source, router=router))
        return self

    def add_conditional_edges_with_path_map(
        self,
        source: str,
        router: Callable[[S], Any],
        path_map: Dict[str, str],
    ) -> "StateGraph[S]":
        """Add a router together with its possible destinations.

        The path map (``label -> node``) makes the destinations visible to
        ``compile()`` validation, diagrams and ``incoming_edge_count``. The
        router may return either a node name or a label.

        Example:
            >>> graph.add_conditional_edges_with_path_map(
            ...     "classify",
            ...     lambda state: "urgent" if state.urgent else "normal",
            ...     {"urgent": "escalate", "normal": "process"},
            ... )
        """
        self._conditional_edges.append(
            ConditionalEdge(source=source, router=router, path_map=dict(path_map))
        )
        return self

    def set_entry_point(self, name: str) -> "StateGraph[S]":
        """Set the first node executed."""
        self._entry_point = name
        return self

    def interrupt_before(self, names: Iterable[str]) -> "StateGraph[S]":
        """Pause before any of ``names`` executes (requires a checkpointer)."""
        self._interrupt_before.update(_as_names(names))
        return self

    def interrupt_after(self, names: Iterable[str]) -> "StateGraph[S]":
        """Pause after any of ``names`` completes (requires a checkpointer)."""
        self._interrupt_after.update(_as_names(names))
        return self

    def add_sequence(self, names: List[str]) -> "StateGraph[S]":
        """Add a sequence of nodes connected linearly.

        Example:
            >>> graph.add_sequence(["fetch", "summarize", "publish"])
            >>> # Creates: fetch -> summarize -> publish
        """
        for i in range(len(names) - 1):
            self.add_edge(names[i], names[i + 1])
        return self

    def compile(
        self,
        checkpointer: Optional[Checkpointer] = None,
        max_iterations: Optional[int] = None,
    ) -> CompiledGraph[S]:
        """Compile the graph into an executable CompiledGraph.

        Args:
            checkpointer: Optional checkpoint backend
            max_iterations: Safety ceiling (defaults to TRELLIS_MAX_ITERATIONS or 100)

        Returns:
            CompiledGraph ready for execution

        Raises:
            GraphValidationError: If graph is invalid
        """
        if not is_state_type(self.state_schema):
            raise GraphValidationError(
                f"State type {getattr(self.state_schema, '__name__', self.state_schema)!r} "
                f"must define merge(self, other)"
            )
        if not self._entry_point:
            raise GraphValidationError(
                "Entry point not set. Call set_entry_point() before compiling."
            )

        graph = ExecutionGraph(
            state_schema=self.state_schema,
            nodes=dict(self._nodes),
            edges=list(self._edges),
            conditional_edges=list(self._conditional_edges),
            entry_point=self._entry_point,
            interrupt_before=frozenset(self._interrupt_before),
            interrupt_after=frozenset(self._interrupt_after),
            cache_policies=dict(self._cache_policies),
            deferred_nodes=frozenset(self._deferred),
        )
        graph.validate()

        # Reachability is only known when every router declares its targets
        if all(ce.path_map for ce in graph.conditional_edges):
            unreachable = sorted(set(graph.nodes) - graph.reachable_nodes())
            if unreachable:
                logger.warning("Nodes unreachable from the entry point: %s", ", ".join(unreachable))

        logger.debug(
            "Compiled graph with %d nodes (entry '%s')", len(graph.nodes), graph.entry_point
        )
        return CompiledGraph(graph, checkpointer=checkpointer, max_iterations=max_iterations)

    def __repr__(self) -> str:
        return (
            f"StateGraph(nodes={len(self._nodes)}, edges={len(self._edges)}, "
            f"conditional_edges={len(self._conditional_edges)}, entry='{self._entry_point}')"
        )


def _as_names(names: Iterable[str]) -> List[str]:
    if isinstance(names, str):
        return [names]
    return list(names)
