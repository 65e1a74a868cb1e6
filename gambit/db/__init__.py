"""
Gambit DB — execution collaborator.

Provides:
- Database: async engine delegating to backend adapters
- QueryResult: rows, row_count and generated identities
- Transaction: explicit begin/commit/rollback handle
- Backend adapters: SQLite (aiosqlite) and an in-memory document store
"""

from .engine import (
    Database,
    register_adapter,
    get_database,
    configure_database,
    set_database,
    get_all_databases,
)
from .backends.base import DatabaseAdapter, AdapterCapabilities, QueryResult
from .transaction import Transaction

__all__ = [
    "Database",
    "register_adapter",
    "get_database",
    "configure_database",
    "set_database",
    "get_all_databases",
    "DatabaseAdapter",
    "AdapterCapabilities",
    "QueryResult",
    "Transaction",
]
