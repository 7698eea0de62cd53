"""SQLite checkpointer for persistent storage.

This backend uses aiosqlite for async checkpoint persistence, providing
durability across process restarts, so a thread paused in one process can
be resumed in another.
"""

import aiosqlite
import json
import logging
from typing import List, Optional
from pathlib import Path

from trellis.checkpoints import Checkpoint, CheckpointConfig
from trellis.utils.config import get_sqlite_path

logger = logging.getLogger(__name__)


class SQLiteSaver:
    """SQLite-based checkpoint persistence backend.

    The database schema:
    - seq: INTEGER PRIMARY KEY AUTOINCREMENT (append order)
    - thread_id: TEXT
    - checkpoint_id: TEXT UNIQUE
    - checkpoint: TEXT (JSON-encoded checkpoint)
    - created_at: TIMESTAMP
    """

    def __init__(self, db_path: Optional[str] = None):
        """Initialize SQLite saver.

        Args:
            db_path: Path to SQLite database file (defaults to
                TRELLIS_SQLITE_PATH or "trellis_checkpoints.db")
        """
        self.db_path = db_path or get_sqlite_path()
        self._initialized = False

    async def _ensure_initialized(self):
        """Ensure database and table exist."""
        if self._initialized:
            return

        # Create directory if needed
        db_dir = Path(self.db_path).parent
        if db_dir and not db_dir.exists():
            db_dir.mkdir(parents=True, exist_ok=True)

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS trellis_checkpoints (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    thread_id TEXT NOT NULL,
                    checkpoint_id TEXT NOT NULL UNIQUE,
                    checkpoint TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            await db.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_thread_seq
                ON trellis_checkpoints(thread_id, seq)
                """
            )
            await db.commit()

        self._initialized = True

    async def put(self, config: CheckpointConfig, checkpoint: Checkpoint) -> None:
        """Append a checkpoint to the database.

        Args:
            config: Thread identifier
            checkpoint: Checkpoint to persist
        """
        await self._ensure_initialized()

        payload = json.dumps(checkpoint.to_dict())

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO trellis_checkpoints (thread_id, checkpoint_id, checkpoint)
                VALUES (?, ?, ?)
                """,
                (config.thread_id, checkpoint.checkpoint_id, payload),
            )
            await db.commit()
        logger.debug(
            "Persisted checkpoint %s for thread %s", checkpoint.checkpoint_id, config.thread_id
        )

    async def get(self, config: CheckpointConfig) -> Optional[Checkpoint]:
        """Load the latest checkpoint for a thread.

        Args:
            config: Thread identifier

        Returns:
            Checkpoint or None if not found
        """
        await self._ensure_initialized()

        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                """
                SELECT checkpoint FROM trellis_checkpoints
                WHERE thread_id = ? ORDER BY seq DESC LIMIT 1
                """,
                (config.thread_id,),
            ) as cursor:
                row = await cursor.fetchone()
                if row:
                    return Checkpoint.from_dict(json.loads(row[0]))
                return None

    async def list(self, config: CheckpointConfig) -> List[Checkpoint]:
        """Load every checkpoint for a thread, oldest first."""
        await self._ensure_initialized()

        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                """
                SELECT checkpoint FROM trellis_checkpoints
                WHERE thread_id = ? ORDER BY seq ASC
                """,
                (config.thread_id,),
            ) as cursor:
                rows = await cursor.fetchall()
                return [Checkpoint.from_dict(json.loads(row[0])) for row in rows]

    async def delete(self, config: CheckpointConfig) -> None:
        """Delete a thread's history."""
        await self._ensure_initialized()

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "DELETE FROM trellis_checkpoints WHERE thread_id = ?",
                (config.thread_id,),
            )
            await db.commit()

    async def list_threads(self) -> List[str]:
        """List all thread ids, most recently written first."""
        await self._ensure_initialized()

        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                """
                SELECT thread_id FROM trellis_checkpoints
                GROUP BY thread_id ORDER BY MAX(seq) DESC
                """
            ) as cursor:
                rows = await cursor.fetchall()
                return [row[0] for row in rows]

    def __repr__(self) -> str:
        return f"SQLiteSaver(db_path='{self.db_path}')"
