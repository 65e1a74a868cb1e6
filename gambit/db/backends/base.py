"""
Gambit DB Backend — Base Adapter Interface.

All backends implement this interface. The ``Database`` engine delegates
to the adapter chosen from the connection URL and only ever hands it
rendered statements: a SQL ``Statement`` for relational backends or a
``DocumentOperation`` for document stores.

Every execution returns a ``QueryResult``:
- rows: result rows as dicts (reads)
- row_count: rows affected (writes) or returned (reads)
- insert_id: generated identity of the first inserted row
- inserted_ids: generated identities of every inserted row, in order
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

logger = logging.getLogger("gambit.db.backends")

__all__ = [
    "DatabaseAdapter",
    "AdapterCapabilities",
    "QueryResult",
]


@dataclass
class AdapterCapabilities:
    """Describes what a specific backend supports."""

    supports_returning: bool = False
    supports_joins: bool = True
    supports_transactions: bool = True
    document_store: bool = False
    param_style: str = "qmark"  # qmark (?) | format (%s) | numeric ($1)
    name: str = "base"


@dataclass
class QueryResult:
    """Outcome of one executed statement."""

    rows: List[Dict[str, Any]] = field(default_factory=list)
    row_count: Optional[int] = None
    insert_id: Any = None
    inserted_ids: List[Any] = field(default_factory=list)

    @property
    def first(self) -> Optional[Dict[str, Any]]:
        return self.rows[0] if self.rows else None


class DatabaseAdapter(ABC):
    """
    Abstract database adapter interface.

    Adapters are the only place that talks to a driver. They must not
    retry, and they report driver errors by raising; the engine turns
    those into ``QueryFault``.
    """

    capabilities: AdapterCapabilities = AdapterCapabilities()

    @abstractmethod
    async def connect(self, url: str, **options) -> None:
        """Open a connection to the database."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the database connection."""
        ...

    @abstractmethod
    async def execute(self, statement: Any) -> QueryResult:
        """Execute one rendered statement."""
        ...

    # ── Transaction management ───────────────────────────────────────

    @abstractmethod
    async def begin(self) -> None:
        """Start a transaction."""
        ...

    @abstractmethod
    async def commit(self) -> None:
        """Commit the current transaction."""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """Rollback the current transaction."""
        ...

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Context manager for transactions."""
        await self.begin()
        try:
            yield
            await self.commit()
        except Exception:
            await self.rollback()
            raise

    @property
    def is_connected(self) -> bool:
        """Check if the adapter is connected."""
        return False

    @property
    def dialect(self) -> str:
        """Return the dialect name used to pick a builder."""
        return self.capabilities.name
