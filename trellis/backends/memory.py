"""In-memory checkpointer for testing and development.

Checkpoints live in a dictionary and are lost when the process terminates.
"""

from typing import Dict, List, Optional
import asyncio
import logging

from trellis.checkpoints import Checkpoint, CheckpointConfig

logger = logging.getLogger(__name__)


class MemorySaver:
    """In-memory checkpoint storage.

    Stores an append-only list of checkpoints per thread id. Writes for all
    threads go through one ``asyncio.Lock``; reads and writes hand out
    copies so callers cannot mutate stored history.

    Useful for:
    - Testing
    - Development
    - Single-process human-in-the-loop demos
    """

    def __init__(self):
        """Initialize memory saver with empty storage."""
        self._storage: Dict[str, List[Checkpoint]] = {}
        self._lock = asyncio.Lock()

    async def put(self, config: CheckpointConfig, checkpoint: Checkpoint) -> None:
        """Append a checkpoint to the thread's history.

        Args:
            config: Thread identifier
            checkpoint: Checkpoint to store
        """
        async with self._lock:
            self._storage.setdefault(config.thread_id, []).append(
                checkpoint.model_copy(deep=True)
            )
        logger.debug(
            "Stored checkpoint %s for thread %s (next=%s)",
            checkpoint.checkpoint_id,
            config.thread_id,
            checkpoint.next_node,
        )

    async def get(self, config: CheckpointConfig) -> Optional[Checkpoint]:
        """Return the latest checkpoint for a thread.

        Args:
            config: Thread identifier

        Returns:
            Checkpoint or None if the thread has no history
        """
        async with self._lock:
            history = self._storage.get(config.thread_id)
            if not history:
                return None
            return history[-1].model_copy(deep=True)

    async def list(self, config: CheckpointConfig) -> List[Checkpoint]:
        """Return every checkpoint for a thread, oldest first."""
        async with self._lock:
            return [cp.model_copy(deep=True) for cp in self._storage.get(config.thread_id, [])]

    async def delete(self, config: CheckpointConfig) -> None:
        """Drop a thread's history."""
        async with self._lock:
            self._storage.pop(config.thread_id, None)

    async def list_threads(self) -> List[str]:
        """List all thread ids with stored checkpoints."""
        async with self._lock:
            return [thread_id for thread_id in self._storage]

    def clear_all(self) -> None:
        """Clear all stored checkpoints.

        Useful for testing and cleanup.
        """
        self._storage.clear()

    def __repr__(self) -> str:
        return f"MemorySaver(threads={len(self._storage)})"
