"""
Persistence collaborators.

- TransitionStore: Contract for snapshot reads and version-checked writes
- InMemoryTransitionStore: Lock-guarded dictionaries
- SqliteTransitionStore: WAL-mode SQLite with compare-and-swap on version
"""

from .base import TransitionStore
from .memory import InMemoryTransitionStore
from .sqlite import SqliteTransitionStore

__all__ = ["TransitionStore", "InMemoryTransitionStore", "SqliteTransitionStore"]
