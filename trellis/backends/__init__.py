"""Checkpoint persistence backends."""

from trellis.backends.memory import MemorySaver
from trellis.backends.sqlite import SQLiteSaver

__all__ = [
    "MemorySaver",
    "SQLiteSaver",
]
