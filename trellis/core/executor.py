"""Graph executor with checkpointing, interrupts, caching and streaming.

This module implements the run loop of a compiled graph. One invocation:

1. Loads the thread's latest checkpoint (when a checkpointer and a
   ``CheckpointConfig`` are given) or starts at the entry point
2. Pauses before nodes listed in ``interrupt_before``
3. Runs the current node, reusing a cached output when the node has a
   ``CachePolicy``
4. Interprets the output: a state is merged and routed along the edges, a
   ``Command`` routes explicitly
5. Persists ``{state, next_node}`` once per completed step
6. Pauses after nodes listed in ``interrupt_after``
7. Stops at END, or raises ``IterationLimitError`` at the safety ceiling
"""

from typing import Any, AsyncIterator, Dict, Generic, List, Optional, Sequence, Tuple, TypeVar
import inspect
import logging

from trellis.checkpoints import Checkpoint, CheckpointConfig, Checkpointer, StateSnapshot
from trellis.core.cache import NodeCache
from trellis.core.command import (
    End,
    Goto,
    GotoWithUpdate,
    Interrupt,
    Resume,
    Send,
    SendCommand,
    Update,
)
from trellis.core.graph import END, ExecutionGraph
from trellis.core.state import (
    coerce_state,
    copy_state,
    deserialize_state,
    serialize_state,
    state_hash,
)
from trellis.interrupts import PAUSE_AFTER, PAUSE_BEFORE, PAUSE_NODE, Complete, GraphResult, Interrupted
from trellis.nodes.base import NodeContext
from trellis.streaming.iterator import GraphStream
from trellis.streaming.modes import StepRecord, StreamMode
from trellis.utils.config import get_max_iterations
from trellis.utils.errors import (
    CheckpointError,
    CheckpointNotFoundError,
    GraphConfigurationError,
    GraphExecutionError,
    InvalidRouteError,
    IterationLimitError,
    NodeExecutionError,
)
from trellis.utils.mermaid import generate_ascii, generate_dot, generate_mermaid_code, save_mermaid_image

logger = logging.getLogger(__name__)

S = TypeVar("S")


class CompiledGraph(Generic[S]):
    """Immutable, executable graph.

    Produced by ``StateGraph.compile()``. The node cache lives on the
    instance, so recompiling (or ``with_checkpointer``) starts empty.

    Example:
        >>> graph = builder.compile(checkpointer=MemorySaver())
        >>> config = CheckpointConfig("thread-1")
        >>> result = await graph.invoke(MessageState.with_messages([...]), config)
        >>> if isinstance(result, Interrupted):
        ...     result = await graph.invoke(Resume("approved"), config)
    """

    def __init__(
        self,
        graph: ExecutionGraph,
        checkpointer: Optional[Checkpointer] = None,
        max_iterations: Optional[int] = None,
    ):
        """Initialize compiled graph.

        Args:
            graph: Validated topology
            checkpointer: Optional checkpoint backend
            max_iterations: Safety ceiling on node executions per run
                (defaults to TRELLIS_MAX_ITERATIONS or 100)
        """
        self.graph = graph
        self.checkpointer = checkpointer
        self.max_iterations = max_iterations if max_iterations is not None else get_max_iterations()
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.cache = NodeCache()

    @property
    def state_schema(self) -> Any:
        return self.graph.state_schema

    @property
    def entry_point(self) -> str:
        return self.graph.entry_point

    def with_checkpointer(self, checkpointer: Checkpointer) -> "CompiledGraph[S]":
        """Return a copy of this graph bound to ``checkpointer`` (empty cache)."""
        return CompiledGraph(self.graph, checkpointer, self.max_iterations)

    def incoming_edge_count(self, node_id: str) -> int:
        """Statically declared edges into ``node_id`` (see ExecutionGraph)."""
        return self.graph.incoming_edge_count(node_id)

    def is_deferred(self, node_id: str) -> bool:
        return self.graph.is_deferred(node_id)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def invoke(self, input_data: Any, config: Optional[CheckpointConfig] = None) -> GraphResult:
        """Run the graph to completion or to the next interrupt.

        Args:
            input_data: Initial state (or its dict form), ``Resume(value)``
                to continue an interrupted thread, or None to continue
            config: Checkpoint config identifying the thread

        Returns:
            ``Complete(state)`` or ``Interrupted(state, interrupt_value, ...)``

        Raises:
            NodeExecutionError: If a node fails
            IterationLimitError: If the iteration ceiling is exceeded
            CheckpointError: If the checkpointer fails
            GraphConfigurationError: If interrupts are used without checkpointing
        """
        result = None
        async for item in self._execute(input_data, config):
            if not isinstance(item, StepRecord):
                result = item
        return result

    def stream(
        self,
        input_data: Any,
        mode: StreamMode = StreamMode.VALUES,
        config: Optional[CheckpointConfig] = None,
    ) -> GraphStream:
        """Run the graph, yielding a ``GraphEvent`` after every node."""
        return GraphStream(self, input_data, [mode], config)

    def stream_modes(
        self,
        input_data: Any,
        modes: Sequence[StreamMode],
        config: Optional[CheckpointConfig] = None,
    ) -> GraphStream:
        """Run the graph once, yielding a ``MultiGraphEvent`` per (node, mode)."""
        return GraphStream(self, input_data, modes, config, multiplexed=True)

    async def _execute(
        self,
        input_data: Any,
        config: Optional[CheckpointConfig],
    ) -> AsyncIterator[Any]:
        """Run loop shared by ``invoke`` and the streams.

        Yields a ``StepRecord`` per completed node, then exactly one
        ``Complete``/``Interrupted`` as the last item.
        """
        self._check_interrupt_configuration(config)

        resumed = isinstance(input_data, Resume)
        resume_value = input_data.value if resumed else None
        thread_id = config.thread_id if config else None

        # Pending Send targets (the first one is the node about to run)
        batch: List[Send] = []
        batch_route: Optional[str] = None
        batch_end = False
        skip_interrupt_before: Optional[str] = None

        checkpoint = await self._load_checkpoint(config)
        if checkpoint is not None and not checkpoint.is_finished:
            state = deserialize_state(self.state_schema, checkpoint.state)
            current = checkpoint.next_node
            if checkpoint.pause in (PAUSE_BEFORE, PAUSE_NODE):
                skip_interrupt_before = current
            batch = [Send(node=item["node"], payload=item["payload"])
                     for item in checkpoint.metadata.get("pending_sends", [])]
            batch_route = checkpoint.metadata.get("send_route")
            batch_end = checkpoint.metadata.get("send_end", False)
            logger.info("Resuming thread '%s' at node '%s'", thread_id, current)
        elif checkpoint is not None:
            state = deserialize_state(self.state_schema, checkpoint.state)
            if input_data is None or resumed:
                yield Complete(state)
                return
            self._merge(state, input_data)
            current = self.entry_point
            logger.info("Thread '%s' finished earlier; starting a new pass", thread_id)
        else:
            if input_data is None or resumed:
                if config is None or self.checkpointer is None:
                    raise GraphConfigurationError(
                        "Resuming requires a checkpointer and a CheckpointConfig"
                    )
                raise CheckpointNotFoundError(config.thread_id)
            state = coerce_state(self.state_schema, input_data)
            current = self.entry_point

        arrivals: Dict[str, int] = {}
        steps = 0

        while True:
            if current == END:
                yield Complete(state)
                return
            if not self.graph.has_node(current):
                raise InvalidRouteError(None, current)
            if steps >= self.max_iterations:
                raise IterationLimitError(self.max_iterations)

            if current in self.graph.interrupt_before and current != skip_interrupt_before:
                await self._save_checkpoint(
                    config, state, current, steps,
                    self._pause_metadata(PAUSE_BEFORE, batch, batch_route, batch_end),
                )
                logger.info("Interrupted before node '%s' (thread '%s')", current, thread_id)
                yield Interrupted(copy_state(state), None, current, PAUSE_BEFORE)
                return
            skip_interrupt_before = None

            steps += 1
            sending = bool(batch)
            context = NodeContext(
                node_id=current,
                step=steps,
                thread_id=thread_id,
                resume=resume_value,
                resumed=resumed,
                is_send_target=sending,
            )
            resumed, resume_value = False, None

            self._note_deferred_arrival(current, arrivals)
            if sending:
                node_input = coerce_state(self.state_schema, batch[0].payload)
            else:
                node_input = copy_state(state)

            logger.debug("Executing node '%s' (step %d)", current, steps)
            output = await self._run_node(current, node_input, context)
            before = copy_state(state)

            if isinstance(output, Interrupt):
                self._require_checkpointing(config, f"node '{current}' requested an interrupt")
                await self._save_checkpoint(
                    config, state, current, steps - 1,
                    self._pause_metadata(PAUSE_NODE, batch, batch_route, batch_end),
                )
                logger.info("Node '%s' interrupted (thread '%s')", current, thread_id)
                yield Interrupted(copy_state(state), output.value, current, PAUSE_NODE)
                return

            ended = False
            if isinstance(output, SendCommand):
                if sending:
                    raise GraphExecutionError(
                        f"Node '{current}' returned a Send while running as a Send target"
                    )
                batch = list(output.targets)
                for target in batch:
                    self._check_route(current, target.node)
                next_node = batch[0].node if batch else await self._resolve_next(current, state)
            elif sending:
                batch = batch[1:]
                route, ended_here = self._apply_command(output, state)
                batch_end = batch_end or ended_here
                if route is not None:
                    batch_route = route
                if batch:
                    next_node = batch[0].node
                elif batch_end:
                    next_node, ended = END, True
                elif batch_route is not None:
                    next_node = batch_route
                else:
                    next_node = await self._resolve_next(current, state)
                if not batch:
                    batch_route, batch_end = None, False
            else:
                route, ended = self._apply_command(output, state)
                if ended:
                    next_node = END
                elif route is not None:
                    next_node = route
                else:
                    next_node = await self._resolve_next(current, state)

            self._check_route(current, next_node)

            pause_after = current in self.graph.interrupt_after and not ended
            metadata = self._pause_metadata(
                PAUSE_AFTER if pause_after else None, batch, batch_route, batch_end
            )
            await self._save_checkpoint(config, state, next_node, steps, metadata)

            yield StepRecord(
                node=current,
                step=steps,
                before=before,
                after=copy_state(state),
                custom=list(context.custom_events),
            )

            if pause_after:
                logger.info("Interrupted after node '%s' (thread '%s')", current, thread_id)
                yield Interrupted(copy_state(state), None, current, PAUSE_AFTER)
                return

            if ended:
                yield Complete(state)
                return

            current = next_node

    def _apply_command(self, output: Any, state: Any) -> Tuple[Optional[str], bool]:
        """Merge the update carried by ``output``.

        Returns:
            ``(explicit_route, ended)``; ``explicit_route`` is None when
            ordinary edge resolution applies
        """
        if isinstance(output, End):
            return None, True
        if isinstance(output, Goto):
            return output.node, False
        if isinstance(output, GotoWithUpdate):
            self._merge(state, output.update)
            return output.node, False
        if isinstance(output, Update):
            self._merge(state, output.update)
            return None, False
        if isinstance(output, Resume):
            raise GraphExecutionError("Resume is an invocation input, not a node output")
        if output is not None:
            self._merge(state, output)
        return None, False

    def _merge(self, state: Any, update: Any) -> None:
        state.merge(coerce_state(self.state_schema, update))

    async def _run_node(self, node_id: str, node_input: Any, context: NodeContext) -> Any:
        """Invoke a node, consulting the cache when it has a CachePolicy."""
        node = self.graph.get_node(node_id)
        policy = self.graph.cache_policies.get(node_id)

        key = None
        if policy is not None and not context.resumed:
            key = (node_id, state_hash(node_input))
            hit, cached = await self.cache.lookup(key)
            if hit:
                logger.debug("Cache hit for node '%s'", node_id)
                return cached

        try:
            output = await node.process(node_input, context)
        except Exception as e:
            raise NodeExecutionError(node_id, str(e), e) from e

        if key is not None and not isinstance(output, Interrupt):
            await self.cache.put(key, output, policy)
        return output

    async def _resolve_next(self, current: str, state: Any) -> str:
        """Resolve the successor via edges: first fixed edge, else the router.

        A node without outgoing edges routes to END.
        """
        target = self.graph.fixed_target(current)
        if target is not None:
            return target

        conditional = self.graph.conditional_edge(current)
        if conditional is None:
            return END

        try:
            result = conditional.router(copy_state(state))
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            raise NodeExecutionError(current, f"router failed: {e}", e) from e

        if not isinstance(result, str):
            raise GraphExecutionError(
                f"Router for node '{current}' returned {type(result).__name__}, expected str"
            )
        path_map = conditional.path_map or {}
        if result != END and not self.graph.has_node(result) and result in path_map:
            result = path_map[result]
        return result

    def _check_route(self, source: str, target: str) -> None:
        if target != END and not self.graph.has_node(target):
            raise InvalidRouteError(source, target)

    def _note_deferred_arrival(self, node_id: str, arrivals: Dict[str, int]) -> None:
        """Track how often a deferred node was reached within one run."""
        if not self.graph.is_deferred(node_id):
            return
        arrivals[node_id] = arrivals.get(node_id, 0) + 1
        expected = self.graph.incoming_edge_count(node_id)
        if arrivals[node_id] < expected:
            logger.debug(
                "Deferred node '%s' running after %d of %d declared incoming edges",
                node_id, arrivals[node_id], expected,
            )

    @staticmethod
    def _pause_metadata(
        pause: Optional[str],
        batch: List[Send],
        batch_route: Optional[str],
        batch_end: bool,
    ) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {}
        if pause:
            metadata["interrupt"] = pause
        if batch:
            metadata["pending_sends"] = [
                {"node": target.node, "payload": serialize_state(target.payload)}
                for target in batch
            ]
            if batch_route is not None:
                metadata["send_route"] = batch_route
            if batch_end:
                metadata["send_end"] = True
        return metadata

    # ------------------------------------------------------------------
    # Checkpointing
    # ------------------------------------------------------------------

    def _check_interrupt_configuration(self, config: Optional[CheckpointConfig]) -> None:
        if self.graph.interrupt_before or self.graph.interrupt_after:
            self._require_checkpointing(config, "interrupt_before/interrupt_after")

    def _require_checkpointing(self, config: Optional[CheckpointConfig], feature: str) -> None:
        if self.checkpointer is None:
            raise GraphConfigurationError(f"{feature} requires a checkpointer")
        if config is None:
            raise GraphConfigurationError(f"{feature} requires a CheckpointConfig with a thread_id")

    def _require_checkpointer(self) -> Checkpointer:
        if self.checkpointer is None:
            raise GraphConfigurationError("No checkpointer configured")
        return self.checkpointer

    async def _load_checkpoint(self, config: Optional[CheckpointConfig]) -> Optional[Checkpoint]:
        if self.checkpointer is None or config is None:
            return None
        try:
            return await self.checkpointer.get(config)
        except Exception as e:
            raise CheckpointError(
                f"Failed to load checkpoint for thread '{config.thread_id}': {e}"
            ) from e

    async def _save_checkpoint(
        self,
        config: Optional[CheckpointConfig],
        state: Any,
        next_node: Optional[str],
        step: int,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        if self.checkpointer is None or config is None:
            return
        checkpoint = Checkpoint(
            state=serialize_state(state),
            next_node=None if next_node == END else next_node,
            step=step,
            metadata=metadata or {},
        )
        try:
            await self.checkpointer.put(config, checkpoint)
        except Exception as e:
            raise CheckpointError(
                f"Failed to persist checkpoint for thread '{config.thread_id}': {e}"
            ) from e

    # ------------------------------------------------------------------
    # State inspection
    # ------------------------------------------------------------------

    async def update_state(self, config: CheckpointConfig, update: Any) -> StateSnapshot[S]:
        """Merge ``update`` into the thread's checkpointed state without running a node.

        The next node and any pause marker are kept, so a following
        ``invoke`` resumes exactly where the thread paused.

        Raises:
            GraphConfigurationError: If no checkpointer is configured
            CheckpointNotFoundError: If the thread has no checkpoint
        """
        checkpointer = self._require_checkpointer()
        checkpoint = await self._load_checkpoint(config)
        if checkpoint is None:
            raise CheckpointNotFoundError(config.thread_id)

        state = deserialize_state(self.state_schema, checkpoint.state)
        self._merge(state, update)

        metadata = dict(checkpoint.metadata)
        metadata["source"] = "update"
        updated = Checkpoint(
            state=serialize_state(state),
            next_node=checkpoint.next_node,
            step=checkpoint.step,
            metadata=metadata,
        )
        try:
            await checkpointer.put(config, updated)
        except Exception as e:
            raise CheckpointError(
                f"Failed to persist checkpoint for thread '{config.thread_id}': {e}"
            ) from e
        logger.info("Updated state of thread '%s'", config.thread_id)
        return self._snapshot(updated)

    async def get_state(self, config: CheckpointConfig) -> Optional[StateSnapshot[S]]:
        """Latest snapshot for a thread, or None if it has no checkpoint."""
        self._require_checkpointer()
        checkpoint = await self._load_checkpoint(config)
        if checkpoint is None:
            return None
        return self._snapshot(checkpoint)

    async def get_state_history(self, config: CheckpointConfig) -> List[StateSnapshot[S]]:
        """Every snapshot for a thread, oldest first."""
        checkpointer = self._require_checkpointer()
        try:
            checkpoints = await checkpointer.list(config)
        except Exception as e:
            raise CheckpointError(
                f"Failed to list checkpoints for thread '{config.thread_id}': {e}"
            ) from e
        return [self._snapshot(checkpoint) for checkpoint in checkpoints]

    def _snapshot(self, checkpoint: Checkpoint) -> StateSnapshot[S]:
        return StateSnapshot(
            state=deserialize_state(self.state_schema, checkpoint.state),
            next_node=checkpoint.next_node,
            checkpoint_id=checkpoint.checkpoint_id,
            created_at=checkpoint.created_at,
            metadata=dict(checkpoint.metadata),
        )

    # ------------------------------------------------------------------
    # Visualization
    # ------------------------------------------------------------------

    def draw_mermaid(self, title: Optional[str] = None, direction: str = "TD") -> str:
        """Render the topology as a Mermaid flowchart."""
        return generate_mermaid_code(self.graph, title=title, direction=direction)

    def draw_ascii(self) -> str:
        """Render the topology as a plain-text summary."""
        return generate_ascii(self.graph)

    def draw_dot(self) -> str:
        """Render the topology in Graphviz DOT format."""
        return generate_dot(self.graph)

    def save_mermaid_image(
        self,
        output_path: str,
        image_format: str = "png",
        title: Optional[str] = None,
        **kwargs: Any,
    ) -> str:
        """Render the Mermaid diagram to an image via mermaid.ink.

        Args:
            output_path: Where to write the image
            image_format: "png", "svg" or "pdf"
            title: Optional diagram title
            **kwargs: Passed through (theme, background_color, client)

        Returns:
            Path to saved image file
        """
        return save_mermaid_image(
            self.draw_mermaid(title=title),
            output_path,
            image_format=image_format,
            **kwargs,
        )

    def __str__(self) -> str:
        return self.draw_ascii()

    def __repr__(self) -> str:
        return (
            f"CompiledGraph(entry='{self.entry_point}', nodes={len(self.graph.nodes)}, "
            f"edges={len(self.graph.edges)}, "
            f"conditional_edges={len(self.graph.conditional_edges)})"
        )
