"""
Gambit DB Backends.

- SQLiteAdapter: relational backend via aiosqlite
- MemoryDocumentAdapter: in-process document store
"""

from .base import DatabaseAdapter, AdapterCapabilities, QueryResult
from .sqlite import SQLiteAdapter
from .memory import MemoryDocumentAdapter

__all__ = [
    "DatabaseAdapter",
    "AdapterCapabilities",
    "QueryResult",
    "SQLiteAdapter",
    "MemoryDocumentAdapter",
]
