"""Base node protocol and implementation.

This module defines the Node protocol that all nodes must implement, the
NodeContext handed to every invocation, a BaseNode class that adds
node-level retry, and FunctionNode for wrapping plain callables.

The executor never retries; retry is a node concern configured through
``BaseNode``'s ``retry`` config.
"""

from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable
from dataclasses import dataclass, field
from abc import ABC, abstractmethod
import asyncio
import inspect


@dataclass
class NodeContext:
    """Runtime context passed to a node invocation.

    Attributes:
        node_id: Name the node is registered under
        step: 1-based step number within the current run
        thread_id: Checkpoint thread id, if the run is checkpointed
        resume: Value supplied with ``Resume(...)`` when this node is the
            first one executed after resuming an interrupted thread
        resumed: True when ``resume`` was supplied (it may itself be None)
        is_send_target: True when invoked as a ``Send`` target
    """

    node_id: str
    step: int = 0
    thread_id: Optional[str] = None
    resume: Any = None
    resumed: bool = False
    is_send_target: bool = False
    custom_events: List[Any] = field(default_factory=list, repr=False)

    async def emit(self, data: Any) -> None:
        """Attach a payload to this node's ``StreamMode.CUSTOM`` event.

        Args:
            data: Arbitrary payload (progress, partial tokens, ...)
        """
        self.custom_events.append(data)


@runtime_checkable
class Node(Protocol):
    """Protocol that all nodes must implement.

    Any class implementing this protocol can be registered on a graph.
    """

    async def process(self, state: Any, context: NodeContext) -> Any:
        """Process the current state.

        Args:
            state: Copy of the accumulated state (or a Send payload)
            context: Runtime context for this invocation

        Returns:
            A state update (merged by the executor) or a Command

        Raises:
            Exception: If processing fails; the run is aborted
        """
        ...


class BaseNode(ABC):
    """Base implementation with common functionality.

    This provides:
    - Automatic retry logic with exponential backoff
    - Config management

    Subclasses must implement _process_impl() with their core logic.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """Initialize base node.

        Args:
            config: Configuration dictionary; ``config["retry"]`` accepts
                ``max_retries``, ``delay`` and ``backoff``
        """
        self.type = self.__class__.__name__
        self.config = config or {}
        self.retry_config = self.config.get("retry", {})

    @abstractmethod
    async def _process_impl(self, state: Any, context: NodeContext) -> Any:
        """Subclasses implement core logic here."""
        pass

    async def process(self, state: Any, context: NodeContext) -> Any:
        """Run ``_process_impl`` with retry logic.

        Raises:
            Exception: If all retry attempts fail
        """
        max_retries = self.retry_config.get("max_retries", 0)
        retry_delay = self.retry_config.get("delay", 1.0)
        retry_backoff = self.retry_config.get("backoff", 2.0)

        for attempt in range(max_retries + 1):
            try:
                return await self._process_impl(state, context)
            except Exception:
                if attempt >= max_retries:
                    raise
                # Calculate delay with exponential backoff
                await asyncio.sleep(retry_delay * (retry_backoff ** attempt))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class FunctionNode(BaseNode):
    """Node wrapping a sync or async callable.

    The callable receives the state, and also the NodeContext when it
    declares a second positional parameter or a parameter named
    ``context``. Sync callables run in the default executor.

    Example:
        >>> async def greet(state):
        ...     return MessageState(messages=[Message.assistant("hi")])
        >>> graph.add_node("greet", greet)
    """

    def __init__(self, fn: Callable[..., Any], config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.fn = fn
        self.is_async = inspect.iscoroutinefunction(fn)
        self.function_name = getattr(fn, "__name__", type(fn).__name__)
        self.wants_context = self._accepts_context(fn)

    @staticmethod
    def _accepts_context(fn: Callable[..., Any]) -> bool:
        try:
            params = list(inspect.signature(fn).parameters.values())
        except (TypeError, ValueError):
            return False
        if any(p.name == "context" for p in params):
            return True
        if any(p.kind == inspect.Parameter.VAR_POSITIONAL for p in params):
            return True
        positional = [
            p for p in params
            if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
        ]
        return len(positional) >= 2

    async def _process_impl(self, state: Any, context: NodeContext) -> Any:
        args = (state, context) if self.wants_context else (state,)
        if self.is_async:
            return await self.fn(*args)

        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(None, lambda: self.fn(*args))
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self) -> str:
        return f"FunctionNode(fn='{self.function_name}')"


def as_node(node_or_fn: Any) -> Node:
    """Return ``node_or_fn`` as a Node, wrapping callables in FunctionNode.

    Raises:
        TypeError: If the value is neither a Node nor callable
    """
    if isinstance(node_or_fn, Node):
        return node_or_fn
    if callable(node_or_fn):
        return FunctionNode(node_or_fn)
    raise TypeError(
        f"Expected a Node or a callable, got: {type(node_or_fn).__name__}"
    )
