"""
Store module: persisted, time-ordered log history.
"""

from .base import LogStore
from .memory import InMemoryLogStore
from .sqlite import SqliteLogStore

__all__ = [
    "LogStore",
    "InMemoryLogStore",
    "SqliteLogStore",
]
