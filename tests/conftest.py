"""
Shared test fixtures and helpers for the Gambit test suite.
"""

import datetime
from typing import Any, List

import pytest
import pytest_asyncio

from gambit.db import Database, set_database
from gambit.db.backends.base import AdapterCapabilities, DatabaseAdapter, QueryResult
from gambit.models import ModelRegistry


FIXED_NOW = datetime.datetime(2024, 5, 1, 12, 0, 0, tzinfo=datetime.timezone.utc)


# ============================================================================
# Recording adapter
# ============================================================================


class RecordingAdapter(DatabaseAdapter):
    """
    Adapter that records every statement it receives.

    Replies come from ``queue()`` in order; without a queued reply,
    inserts get increasing ids, writes report one affected row and reads
    return no rows.
    """

    capabilities = AdapterCapabilities(name="sqlite")

    def __init__(self):
        self.statements: List[Any] = []
        self.replies: List[QueryResult] = []
        self.next_id = 1
        self.connected = False

    def queue(self, *replies: QueryResult) -> None:
        self.replies.extend(replies)

    def kinds(self) -> List[str]:
        return [s.kind for s in self.statements]

    @property
    def last(self) -> Any:
        return self.statements[-1]

    async def connect(self, url: str, **options) -> None:
        self.connected = True

    async def disconnect(self) -> None:
        self.connected = False

    async def execute(self, statement: Any) -> QueryResult:
        self.statements.append(statement)
        if self.replies:
            return self.replies.pop(0)
        if statement.kind == "insert":
            result = QueryResult(row_count=1, insert_id=self.next_id, inserted_ids=[self.next_id])
            self.next_id += 1
            return result
        if statement.kind in ("update", "delete"):
            return QueryResult(row_count=1)
        return QueryResult(rows=[], row_count=0)

    async def begin(self) -> None:
        self.statements.append("BEGIN")

    async def commit(self) -> None:
        self.statements.append("COMMIT")

    async def rollback(self) -> None:
        self.statements.append("ROLLBACK")

    @property
    def is_connected(self) -> bool:
        return self.connected


def rows(*dicts: dict) -> QueryResult:
    """Canned read reply."""
    return QueryResult(rows=list(dicts), row_count=len(dicts))


def affected(n: int) -> QueryResult:
    """Canned write reply."""
    return QueryResult(row_count=n)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def reset_model_state():
    """Drop hooks, scopes, bindings and pending visibility between tests."""
    yield
    for model_cls in ModelRegistry.all_models().values():
        model_cls._state.reset()
        model_cls._db = None
    ModelRegistry.set_database(None)
    set_database(None)


@pytest.fixture
def adapter():
    return RecordingAdapter()


@pytest.fixture
def recording_db(adapter):
    db = Database("recording://", adapter=adapter, dialect="sqlite")
    ModelRegistry.set_database(db)
    return db


@pytest_asyncio.fixture
async def sqlite_db():
    db = Database("sqlite:///:memory:")
    await db.connect()
    ModelRegistry.set_database(db)
    yield db
    await db.disconnect()


@pytest_asyncio.fixture
async def sqlite_schema(sqlite_db):
    """SQLite database with tables for every registered model."""
    await ModelRegistry.create_tables(sqlite_db)
    return sqlite_db


@pytest_asyncio.fixture
async def memory_db():
    db = Database("memory://")
    await db.connect()
    ModelRegistry.set_database(db)
    yield db
    await db.disconnect()


@pytest.fixture
def frozen_clock(monkeypatch):
    """Pin every model lifecycle's clock to ``FIXED_NOW``."""
    for model_cls in ModelRegistry.all_models().values():
        monkeypatch.setattr(model_cls._lifecycle, "clock", lambda: FIXED_NOW)
    return FIXED_NOW
