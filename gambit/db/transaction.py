"""
Gambit Transactions — explicit begin/commit/rollback handle.

Usage:
    from gambit.db import Transaction

    txn = Transaction(db)
    await txn.begin()
    try:
        await user.save()
        await txn.commit()
    except Exception:
        await txn.rollback()
        raise

    # Or let Transaction.run manage it:
    result = await Transaction.run(db, lambda txn: transfer(a, b, 100))

    # With hooks:
    async with Transaction(db) as txn:
        await Order.create({"total": 100})
        txn.on_commit(lambda: notify("order confirmed"))
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional, TypeVar, TYPE_CHECKING

from ..faults import TransactionFault

if TYPE_CHECKING:
    from .engine import Database

logger = logging.getLogger("gambit.db.transaction")

__all__ = ["Transaction"]

T = TypeVar("T")


class Transaction:
    """
    One transaction on one database.

    - ``commit`` twice, or after ``rollback``, raises ``TransactionFault``
    - ``rollback`` after ``commit`` raises; after ``rollback`` it is a no-op
    - ``on_commit`` hooks run after a successful commit only
    - ``on_rollback`` hooks run after any rollback
    """

    def __init__(self, db: Optional["Database"] = None):
        self._db = db
        self._begun = False
        self._committed = False
        self._rolled_back = False
        self._commit_hooks: List[Callable] = []
        self._rollback_hooks: List[Callable] = []

    def _get_db(self) -> "Database":
        if self._db is not None:
            return self._db
        from .engine import get_database
        return get_database()

    async def begin(self) -> None:
        if self._begun:
            raise TransactionFault("transaction already begun")
        await self._get_db().begin()
        self._begun = True
        logger.debug("Transaction begun")

    async def commit(self) -> None:
        if self._committed:
            raise TransactionFault("transaction already committed")
        if self._rolled_back:
            raise TransactionFault("transaction already rolled back")
        if not self._begun:
            raise TransactionFault("transaction was never begun")
        await self._get_db().commit()
        self._committed = True
        logger.debug("Transaction committed")
        await self._fire_hooks(self._commit_hooks)

    async def rollback(self) -> None:
        if self._committed:
            raise TransactionFault("cannot rollback a committed transaction")
        if self._rolled_back or not self._begun:
            return
        await self._get_db().rollback()
        self._rolled_back = True
        logger.debug("Transaction rolled back")
        await self._fire_hooks(self._rollback_hooks)

    def is_active(self) -> bool:
        return self._begun and not self._committed and not self._rolled_back

    def on_commit(self, fn: Callable) -> None:
        """Register a function to call after a successful commit (sync or async)."""
        self._commit_hooks.append(fn)

    def on_rollback(self, fn: Callable) -> None:
        """Register a function to call if this transaction rolls back."""
        self._rollback_hooks.append(fn)

    async def _fire_hooks(self, hooks: List[Callable]) -> None:
        """Execute a list of hooks, logging failures."""
        for hook in hooks:
            try:
                result = hook()
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.error(f"Transaction hook failed: {exc}")

    async def __aenter__(self) -> Transaction:
        await self.begin()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            if self.is_active():
                await self.rollback()
        elif self.is_active():
            await self.commit()
        return False

    @classmethod
    async def run(
        cls,
        db: Optional["Database"],
        callback: Callable[[Transaction], Awaitable[T]],
    ) -> T:
        """Run ``callback`` inside a transaction: commit on success, rollback on error."""
        txn = cls(db)
        await txn.begin()
        try:
            result = await callback(txn)
            await txn.commit()
            return result
        except Exception:
            if txn.is_active():
                await txn.rollback()
            raise
