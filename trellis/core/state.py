"""State contract for graph execution.

A graph is generic over a caller-supplied state type. The executor only
relies on three capabilities, checked at runtime:

- duplication (``copy.deepcopy``), since nodes receive their own copy and
  checkpoints snapshot the accumulator
- ``merge(other)``, which folds a partial update into the accumulator in place
- structural (de)serialization to a JSON-like tree, used for checkpoints
  and cache keys

Any pydantic model or dataclass with a ``merge`` method satisfies the
contract. ``MessageState`` is the built-in state for chat style graphs.
"""

from typing import Any, Dict, List, Optional, Protocol, Type, TypeVar, runtime_checkable
import copy
import hashlib
import json

from pydantic import BaseModel, Field, TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError, to_jsonable_python

from trellis.utils.errors import StateSerializationError


@runtime_checkable
class State(Protocol):
    """Protocol that every graph state type must implement."""

    def merge(self, other: Any) -> None:
        """Fold ``other`` into this state in place.

        Replaying a checkpoint followed by the remaining deltas must produce
        the same observable state as an uninterrupted run.
        """
        ...


S = TypeVar("S")


class Message(BaseModel):
    """A single chat message carried by ``MessageState``.

    Attributes:
        role: Message role (user, assistant, tool, system)
        content: Message text
        name: Optional author name (e.g. the tool that produced it)
    """

    role: str
    content: str
    name: Optional[str] = None

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(role="assistant", content=content)

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role="system", content=content)

    @classmethod
    def tool(cls, content: str, name: Optional[str] = None) -> "Message":
        return cls(role="tool", content=content, name=name)


class MessageState(BaseModel):
    """Built-in state holding an ordered list of messages.

    ``merge`` appends the incoming messages, so a node returns only the
    messages it produced.

    Example:
        >>> state = MessageState(messages=[Message.user("hi")])
        >>> state.merge(MessageState(messages=[Message.assistant("hello")]))
        >>> [m.role for m in state.messages]
        ['user', 'assistant']
    """

    messages: List[Message] = Field(default_factory=list)

    @classmethod
    def with_messages(cls, messages: List[Message]) -> "MessageState":
        return cls(messages=list(messages))

    def last_message(self) -> Optional[Message]:
        return self.messages[-1] if self.messages else None

    def merge(self, other: "MessageState") -> None:
        self.messages.extend(other.messages)


def is_state_type(state_type: Type[Any]) -> bool:
    """Check whether a type exposes a callable ``merge``."""
    return callable(getattr(state_type, "merge", None))


def copy_state(state: S) -> S:
    """Return an independent copy of a state value."""
    return copy.deepcopy(state)


def serialize_state(state: Any) -> Any:
    """Serialize a state value to a JSON-compatible tree.

    Args:
        state: State instance (pydantic model, dataclass, dict, ...)

    Returns:
        Tree of dicts, lists and scalars

    Raises:
        StateSerializationError: If the value cannot be represented as JSON
    """
    try:
        return to_jsonable_python(state)
    except PydanticSerializationError as e:
        raise StateSerializationError(
            f"Cannot serialize state of type {type(state).__name__}: {e}"
        ) from e


def deserialize_state(state_type: Type[S], data: Any) -> S:
    """Rebuild a state value from its serialized tree.

    Args:
        state_type: Target state type
        data: Output of ``serialize_state``

    Returns:
        State instance of ``state_type``

    Raises:
        StateSerializationError: If validation against ``state_type`` fails
    """
    try:
        return _adapter(state_type).validate_python(data)
    except ValidationError as e:
        raise StateSerializationError(
            f"Cannot deserialize {state_type.__name__}: {e}"
        ) from e


def coerce_state(state_type: Type[S], value: Any) -> S:
    """Return ``value`` as a ``state_type`` instance.

    Instances pass through untouched (copied); anything else is treated as
    a serialized tree. Used for ``Send`` payloads.
    """
    if isinstance(value, state_type):
        return copy_state(value)
    return deserialize_state(state_type, value)


def state_hash(state: Any) -> str:
    """SHA-256 of the canonical JSON form of a state value."""
    content = json.dumps(serialize_state(state), sort_keys=True, default=str)
    return hashlib.sha256(content.encode()).hexdigest()


_adapters: Dict[Any, TypeAdapter] = {}


def _adapter(state_type: Type[Any]) -> TypeAdapter:
    adapter = _adapters.get(state_type)
    if adapter is None:
        adapter = TypeAdapter(state_type)
        _adapters[state_type] = adapter
    return adapter
