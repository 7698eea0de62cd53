"""Checkpointing port for resumable graph execution.

A checkpoint is a ``(state, next_node)`` snapshot for one thread, written
after every completed node and whenever the graph pauses. The executor only
talks to the ``Checkpointer`` protocol, so any keyed store can back it; see
``trellis.backends`` for the in-memory and SQLite implementations.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, Protocol, TypeVar, runtime_checkable
import uuid

from pydantic import BaseModel, Field

S = TypeVar("S")


class CheckpointConfig(BaseModel):
    """Identifies one independent, resumable run.

    Attributes:
        thread_id: Thread identifier; distinct ids never share history
    """

    thread_id: str

    model_config = {"frozen": True}

    def __init__(self, thread_id: str, **kwargs: Any):
        super().__init__(thread_id=thread_id, **kwargs)


class Checkpoint(BaseModel):
    """Snapshot of the accumulated state at a step boundary.

    Attributes:
        state: Serialized state (JSON tree)
        next_node: Node scheduled to run next, None once the run finished
        checkpoint_id: Unique identifier
        created_at: Creation timestamp
        step: Number of nodes executed in the run that wrote it
        metadata: Bookkeeping, e.g. {"interrupt": "before"} on pauses
    """

    state: Any
    next_node: Optional[str] = None
    checkpoint_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = Field(default_factory=datetime.now)
    step: int = 0
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_finished(self) -> bool:
        return self.next_node is None

    @property
    def pause(self) -> Optional[str]:
        """Pause position recorded with this checkpoint, if any."""
        return self.metadata.get("interrupt")

    def to_dict(self) -> Dict[str, Any]:
        """Serialize checkpoint to a JSON-compatible dictionary."""
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Checkpoint":
        """Deserialize checkpoint from ``to_dict()`` output."""
        return cls.model_validate(data)


@runtime_checkable
class Checkpointer(Protocol):
    """Protocol for checkpoint persistence backends.

    Implementations are responsible for serializing concurrent writes to the
    same thread id.
    """

    async def put(self, config: CheckpointConfig, checkpoint: Checkpoint) -> None:
        """Append a checkpoint to the thread's history.

        Raises:
            Exception: If the write fails
        """
        ...

    async def get(self, config: CheckpointConfig) -> Optional[Checkpoint]:
        """Return the most recent checkpoint, or None."""
        ...

    async def list(self, config: CheckpointConfig) -> List[Checkpoint]:
        """Return the full history, oldest first."""
        ...


@dataclass
class StateSnapshot(Generic[S]):
    """Deserialized view of a checkpoint, returned by ``get_state``.

    Attributes:
        state: State value
        next_node: Node scheduled to run next (None when finished)
        checkpoint_id: Source checkpoint id
        created_at: Source checkpoint timestamp
        metadata: Source checkpoint metadata
    """

    state: S
    next_node: Optional[str]
    checkpoint_id: str = ""
    created_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
