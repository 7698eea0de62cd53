"""Per-node memoization for compiled graphs.

A node registered with a ``CachePolicy`` is keyed by
``(node_name, sha256(serialized input state))``. A live entry short-circuits
the node invocation entirely; misses and expired entries invoke the node and
store its output until ``now + ttl``. The cache belongs to one CompiledGraph
and is never persisted.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, Optional, Tuple, Union
import asyncio
import copy
import logging
import time

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachePolicy:
    """Memoization settings for one node.

    Attributes:
        ttl: Lifetime of a cached output in seconds (or a timedelta)
    """

    ttl: Union[float, timedelta]

    def __post_init__(self):
        if self.ttl_seconds <= 0:
            raise ValueError("CachePolicy.ttl must be positive")

    @property
    def ttl_seconds(self) -> float:
        if isinstance(self.ttl, timedelta):
            return self.ttl.total_seconds()
        return float(self.ttl)


@dataclass
class CacheEntry:
    """Stored node output and its expiry on the cache clock."""

    output: Any
    expires_at: float

    def is_live(self, now: float) -> bool:
        return now < self.expires_at


CacheKey = Tuple[str, str]


class NodeCache:
    """Lock-protected output cache shared by all runs of one graph.

    Args:
        clock: Monotonic time source in seconds (injectable for tests)
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self.clock = clock or time.monotonic
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._lock = asyncio.Lock()
        self.hits = 0
        self.misses = 0

    async def lookup(self, key: CacheKey) -> Tuple[bool, Any]:
        """Return ``(True, output copy)`` for a live entry, else ``(False, None)``.

        Expired entries are evicted on lookup.
        """
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return False, None
            if not entry.is_live(self.clock()):
                del self._entries[key]
                self.misses += 1
                logger.debug("Cache entry for node '%s' expired", key[0])
                return False, None
            self.hits += 1
            return True, copy.deepcopy(entry.output)

    async def put(self, key: CacheKey, output: Any, policy: CachePolicy) -> None:
        """Store ``output`` unless a live entry was inserted meanwhile.

        Expired entries for every key are dropped on insert.
        """
        async with self._lock:
            now = self.clock()
            expired = [k for k, entry in self._entries.items() if not entry.is_live(now)]
            for k in expired:
                del self._entries[k]
            current = self._entries.get(key)
            if current is not None and current.is_live(now):
                return
            self._entries[key] = CacheEntry(
                output=copy.deepcopy(output),
                expires_at=now + policy.ttl_seconds,
            )

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
