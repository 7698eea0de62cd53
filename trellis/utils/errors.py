"""Custom error classes for Trellis."""

from typing import Optional


class TrellisError(Exception):
    """Base exception for all Trellis errors."""

    pass


class GraphValidationError(TrellisError):
    """Raised by ``compile()`` when the graph structure is invalid."""

    pass


class GraphConfigurationError(TrellisError):
    """Raised when a feature is used without the configuration it needs.

    For example interrupts or ``update_state`` without a checkpointer, or a
    checkpointed run without a thread id.
    """

    pass


class GraphExecutionError(TrellisError):
    """Base class for failures that abort a run."""

    pass


class NodeExecutionError(GraphExecutionError):
    """Raised when node execution fails."""

    def __init__(self, node_id: str, message: str, original_error: Optional[Exception] = None):
        self.node_id = node_id
        self.original_error = original_error
        super().__init__(f"Node '{node_id}' execution failed: {message}")


class IterationLimitError(GraphExecutionError):
    """Raised when a run exceeds the iteration ceiling."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(
            f"Execution exceeded maximum iterations ({limit}); "
            f"the graph probably has a cycle with no reachable END"
        )


class InvalidRouteError(GraphExecutionError):
    """Raised when routing resolves to a node that is not registered."""

    def __init__(self, source: Optional[str], target: str):
        self.source = source
        self.target = target
        origin = f" from '{source}'" if source else ""
        super().__init__(f"Cannot route{origin} to unknown node '{target}'")


class StateSerializationError(GraphExecutionError):
    """Raised when state cannot be converted to or from its JSON tree."""

    pass


class CheckpointError(GraphExecutionError):
    """Raised when the checkpointer fails to persist or load a checkpoint."""

    pass


class CheckpointNotFoundError(CheckpointError):
    """Raised when a thread has no checkpoint."""

    def __init__(self, thread_id: str):
        self.thread_id = thread_id
        super().__init__(f"No checkpoint found for thread: {thread_id}")
