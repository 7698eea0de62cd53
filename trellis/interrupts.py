"""Interrupt system for human-in-the-loop workflows.

Two mechanisms pause a run:

- declarative: ``interrupt_before`` / ``interrupt_after`` on the builder,
  which always pause at the named node boundary
- imperative: a node returns ``interrupt(value)``; its own update is
  discarded and the checkpoint points back at that node, so resuming
  re-executes it

Pausing is not an error. A run returns ``Complete`` or ``Interrupted``:

    >>> result = await graph.invoke(state, config)
    >>> if isinstance(result, Interrupted):
    ...     await graph.update_state(config, reviewer_edits)
    ...     result = await graph.invoke(Resume("approved"), config)
"""

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar, Union

from trellis.core.command import Interrupt

S = TypeVar("S")

# Values of Checkpoint.metadata["interrupt"]
PAUSE_BEFORE = "before"
PAUSE_AFTER = "after"
PAUSE_NODE = "node"


def interrupt(value: Any = None) -> Interrupt:
    """Request a pause from inside a node.

    Return the result as the node output. ``value`` is handed back to the
    caller as ``Interrupted.interrupt_value`` (e.g. the tool call awaiting
    approval).

    Example:
        >>> async def guard(state, context):
        ...     if context.resume is None and state.tool == "delete_database":
        ...         return interrupt({"tool": state.tool})
        ...     return state
    """
    return Interrupt(value=value)


@dataclass
class Complete(Generic[S]):
    """The run reached END."""

    state: S

    @property
    def is_interrupted(self) -> bool:
        return False


@dataclass
class Interrupted(Generic[S]):
    """The run paused and can be resumed with the same thread id.

    Attributes:
        state: State as of the pause
        interrupt_value: Value passed to ``interrupt()``, if any
        node: Node at which the pause happened
        position: "before", "after" or "node"
    """

    state: S
    interrupt_value: Any = None
    node: Optional[str] = None
    position: Optional[str] = None

    @property
    def is_interrupted(self) -> bool:
        return True


GraphResult = Union[Complete[S], Interrupted[S]]
