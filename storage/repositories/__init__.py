"""
Repository Layer Package.

============================================================
PURPOSE
============================================================
The repository layer is the only gateway to persistent
storage. The engine depends on the SignalStore contract; the
implementations here are interchangeable.

============================================================
IMPLEMENTATIONS
============================================================
- SqlSignalStore: SQLAlchemy async (PostgreSQL / SQLite)
- InMemorySignalStore: process-local, for tests and dry runs

============================================================
"""

from storage.repositories.exceptions import (
    DuplicateRecordError,
    QueryError,
    RepositoryException,
    StorageConnectionError,
)
from storage.repositories.memory_store import InMemorySignalStore
from storage.repositories.signal_store import SignalFilter, SignalStore
from storage.repositories.sql_signal_store import SqlSignalStore


__all__ = [
    "SignalFilter",
    "SignalStore",
    "SqlSignalStore",
    "InMemorySignalStore",
    "RepositoryException",
    "DuplicateRecordError",
    "StorageConnectionError",
    "QueryError",
]
