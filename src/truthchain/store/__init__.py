"""Storage backends for claims, stakes, profiles and leaderboards."""

from .interface import ClaimStore
from .memory import InMemoryStore
from .postgres import PostgresStore

__all__ = [
    "ClaimStore",
    "InMemoryStore",
    "PostgresStore",
]
