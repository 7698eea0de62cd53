"""Control-flow commands a node can return instead of a plain state.

A node normally returns a new state, which is merged and routed along the
graph's edges. Returning one of the commands below overrides that:

    >>> async def triage(state, context):
    ...     if state.needs_review:
    ...         return GotoWithUpdate("review", MyState(flag=True))
    ...     return End()

``Command`` is a closed union; the executor dispatches on it exhaustively.
"""

from dataclasses import dataclass, field
from typing import Any, Generic, List, TypeVar, Union

S = TypeVar("S")


@dataclass(frozen=True)
class Goto:
    """Route to ``node`` next, bypassing edge resolution."""

    node: str


@dataclass(frozen=True)
class GotoWithUpdate(Generic[S]):
    """Merge ``update``, then route to ``node``."""

    node: str
    update: S


@dataclass(frozen=True)
class Update(Generic[S]):
    """Merge ``update`` and keep normal edge routing."""

    update: S


@dataclass(frozen=True)
class End:
    """Terminate the run immediately."""


@dataclass(frozen=True)
class Send:
    """One fan-out target: a node name and the input it receives.

    Attributes:
        node: Target node name
        payload: State instance, or a JSON tree validated into the state type
    """

    node: str
    payload: Any

    def __post_init__(self):
        if not isinstance(self.node, str):
            raise ValueError("Send.node must be a string node name")


@dataclass(frozen=True)
class SendCommand:
    """Dispatch to several targets, processed in list order."""

    targets: List[Send] = field(default_factory=list)


@dataclass(frozen=True)
class Resume:
    """Value supplied by the caller when continuing an interrupted thread.

    Passed as the input of ``invoke``/``stream``; the resumed node reads it
    from ``NodeContext.resume``.
    """

    value: Any = None


@dataclass(frozen=True)
class Interrupt:
    """Pause marker produced by ``interrupt()``."""

    value: Any = None


Command = Union[Goto, GotoWithUpdate, Update, End, SendCommand, Resume, Interrupt]

COMMAND_TYPES = (Goto, GotoWithUpdate, Update, End, SendCommand, Resume, Interrupt)


def is_command(value: Any) -> bool:
    """Check whether a node output is a ``Command`` rather than a state."""
    return isinstance(value, COMMAND_TYPES)


def send(*targets: Send) -> SendCommand:
    """Build a ``SendCommand`` from ``Send`` targets."""
    return SendCommand(targets=list(targets))
