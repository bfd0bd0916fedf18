"""Conversion history storage."""

from .store import HistoryRecord, HistoryStore, InMemoryHistoryStore
from .postgres_store import PostgresHistoryStore

__all__ = [
    "HistoryRecord",
    "HistoryStore",
    "InMemoryHistoryStore",
    "PostgresHistoryStore",
]
