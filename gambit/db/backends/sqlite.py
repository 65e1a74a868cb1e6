"""
Gambit DB Backend — SQLite adapter via aiosqlite.

This is the default relational backend. Statements arrive already
rendered with ``?`` placeholders; reads return row dicts, writes report
affected rows and generated identities.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List

from .base import DatabaseAdapter, AdapterCapabilities, QueryResult

try:
    import aiosqlite
except ImportError:
    aiosqlite = None  # type: ignore[assignment]

logger = logging.getLogger("gambit.db.backends.sqlite")

__all__ = ["SQLiteAdapter"]


class SQLiteAdapter(DatabaseAdapter):
    """
    SQLite adapter using aiosqlite.

    Features:
    - Foreign key enforcement
    - Autocommit outside explicit transactions
    - Identity reporting for single and multi-row inserts
    """

    capabilities = AdapterCapabilities(
        supports_returning=False,
        supports_joins=True,
        supports_transactions=True,
        document_store=False,
        param_style="qmark",
        name="sqlite",
    )

    def __init__(self):
        self._connection: Any = None
        self._connected = False
        self._lock = asyncio.Lock()
        self._in_transaction = False

    async def connect(self, url: str, **options) -> None:
        if self._connected:
            return
        if aiosqlite is None:
            raise ImportError(
                "aiosqlite is required for SQLite backend. "
                "Install: pip install aiosqlite"
            )
        async with self._lock:
            if self._connected:
                return
            db_path = self._parse_url(url)
            self._connection = await aiosqlite.connect(db_path)
            if db_path != ":memory:":
                await self._connection.execute("PRAGMA journal_mode=WAL")
            await self._connection.execute("PRAGMA foreign_keys=ON")
            self._connection.row_factory = aiosqlite.Row
            self._connected = True
            logger.info(f"SQLite connected: {db_path}")

    async def disconnect(self) -> None:
        if not self._connected:
            return
        async with self._lock:
            if self._connection:
                await self._connection.close()
                self._connection = None
            self._connected = False
            logger.info("SQLite disconnected")

    async def execute(self, statement: Any) -> QueryResult:
        if not self._connected:
            raise RuntimeError("Not connected")
        cursor = await self._connection.execute(statement.text, list(statement.params))
        try:
            if cursor.description:
                rows = await cursor.fetchall()
                return QueryResult(rows=self._to_dicts(cursor, rows), row_count=len(rows))

            result = QueryResult(row_count=cursor.rowcount)
            if statement.kind == "insert" and cursor.lastrowid:
                # one statement allocates consecutive rowids, ending at lastrowid
                count = max(cursor.rowcount, 1)
                first = cursor.lastrowid - count + 1
                result.inserted_ids = list(range(first, cursor.lastrowid + 1))
                result.insert_id = result.inserted_ids[0]
            return result
        finally:
            await cursor.close()
            if not self._in_transaction:
                await self._connection.commit()

    # ── Transactions ─────────────────────────────────────────────────

    async def begin(self) -> None:
        await self._connection.execute("BEGIN")
        self._in_transaction = True

    async def commit(self) -> None:
        await self._connection.commit()
        self._in_transaction = False

    async def rollback(self) -> None:
        await self._connection.rollback()
        self._in_transaction = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def dialect(self) -> str:
        return "sqlite"

    @staticmethod
    def _to_dicts(cursor: Any, rows: List[Any]) -> List[Dict[str, Any]]:
        if rows and hasattr(rows[0], "keys"):
            return [dict(row) for row in rows]
        cols = [d[0] for d in cursor.description]
        return [dict(zip(cols, row)) for row in rows]

    @staticmethod
    def _parse_url(url: str) -> str:
        """Extract file path from sqlite URL."""
        for prefix in ("sqlite:///", "sqlite://"):
            if url.startswith(prefix):
                path = url[len(prefix):]
                return path or ":memory:"
        return url.replace("sqlite:", "").lstrip("/") or ":memory:"
