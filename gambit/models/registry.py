"""
Gambit Model Registry — per-type state and the global model index.

``ModelState`` is owned by exactly one model type and holds everything
that type accumulates at runtime: its hook registry, local scopes,
global scopes and the single-use trashed-visibility modifier.

``ModelRegistry`` indexes model classes by name (so relations can name
their target as a string), holds the registry-wide database, and
creates tables for every registered model.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Type, TYPE_CHECKING

from ..faults import ModelNotFoundFault, ScopeNotFoundFault
from .hooks import HookRegistry

if TYPE_CHECKING:
    from ..db.engine import Database
    from .base import Model

logger = logging.getLogger("gambit.models.registry")

__all__ = ["TrashedVisibility", "ModelState", "ModelRegistry"]

ScopeFn = Callable[..., Any]


class TrashedVisibility(str, Enum):
    """Which rows the next read of a soft-deleting type sees."""

    DEFAULT = "default"  # live rows only
    WITH = "with"        # live and soft-deleted rows
    ONLY = "only"        # soft-deleted rows only


class ModelState:
    """
    Runtime registries of one model type.

    Not safe for concurrent mutation: register hooks and scopes at
    start-up, and do not interleave ``with_trashed()`` calls on the same
    type across concurrent tasks.
    """

    __slots__ = ("model_name", "hooks", "local_scopes", "global_scopes", "visibility")

    def __init__(self, model_name: str):
        self.model_name = model_name
        self.hooks = HookRegistry(model_name)
        self.local_scopes: Dict[str, ScopeFn] = {}
        self.global_scopes: Dict[str, ScopeFn] = {}
        self.visibility = TrashedVisibility.DEFAULT

    # ── Scopes ───────────────────────────────────────────────────────

    def add_scope(self, name: str, fn: ScopeFn) -> None:
        self.local_scopes[name] = fn

    def get_scope(self, name: str) -> ScopeFn:
        try:
            return self.local_scopes[name]
        except KeyError:
            raise ScopeNotFoundFault(self.model_name, name) from None

    def add_global_scope(self, name: str, fn: ScopeFn) -> None:
        self.global_scopes[name] = fn

    def remove_global_scope(self, name: str) -> bool:
        return self.global_scopes.pop(name, None) is not None

    def clear_global_scopes(self) -> None:
        self.global_scopes.clear()

    def apply_global_scopes(self, qb: Any, without: tuple = ()) -> Any:
        """
        Apply every global scope, in registration order, except ``without``.

        Each scope's predicates are isolated in their own group, so an
        ``or_where`` inside one scope cannot loosen the others.
        """
        for name, fn in list(self.global_scopes.items()):
            if name in without:
                continue
            start = len(qb.wheres)
            result = fn(qb)
            if result is not None:
                qb = result
            qb.isolate_wheres(start)
        return qb

    # ── Trashed visibility ───────────────────────────────────────────

    def set_visibility(self, visibility: TrashedVisibility) -> None:
        self.visibility = visibility

    def consume_visibility(self) -> TrashedVisibility:
        """Return the pending modifier and reset it; it applies to one read only."""
        visibility, self.visibility = self.visibility, TrashedVisibility.DEFAULT
        return visibility

    def reset(self) -> None:
        self.hooks.clear()
        self.local_scopes.clear()
        self.global_scopes.clear()
        self.visibility = TrashedVisibility.DEFAULT

    def __repr__(self) -> str:
        return (
            f"<ModelState {self.model_name} scopes={list(self.local_scopes)} "
            f"global={list(self.global_scopes)} visibility={self.visibility.value}>"
        )


class ModelRegistry:
    """
    Global registry for all Model subclasses.

    Tracks concrete models by class name and holds the database that
    models without their own binding fall back to.
    """

    _models: Dict[str, Type[Model]] = {}
    _db: Optional[Database] = None

    @classmethod
    def register(cls, model_cls: Type[Model]) -> None:
        """Register a model class."""
        name = model_cls.__name__
        if name in cls._models and cls._models[name] is not model_cls:
            logger.debug(f"Model {name} re-registered, replacing previous definition")
        cls._models[name] = model_cls

    @classmethod
    def get(cls, name: str) -> Optional[Type[Model]]:
        """Get model class by name."""
        return cls._models.get(name)

    @classmethod
    def resolve(cls, target: Any) -> Type[Model]:
        """Model class for a class or a registered class name."""
        if isinstance(target, str):
            model_cls = cls._models.get(target)
            if model_cls is None:
                raise ModelNotFoundFault(target)
            return model_cls
        return target

    @classmethod
    def all_models(cls) -> Dict[str, Type[Model]]:
        """Get all registered models."""
        return dict(cls._models)

    @classmethod
    def set_database(cls, db: Optional[Database]) -> None:
        """Set the database for every model without its own binding."""
        cls._db = db

    @classmethod
    def get_database(cls) -> Optional[Database]:
        return cls._db

    @classmethod
    def create_table_statements(cls, dialect: str = "sqlite") -> List[str]:
        """DDL for every registered model, then every pivot table."""
        statements: List[str] = []
        pivots: Dict[str, str] = {}
        for model_cls in cls._models.values():
            statements.append(model_cls.create_table_sql(dialect))
            for relation in model_cls._relations.values():
                pivot_sql = relation.create_pivot_sql(dialect)
                if pivot_sql and relation.pivot_table not in pivots:
                    pivots[relation.pivot_table] = pivot_sql
        statements.extend(pivots.values())
        return statements

    @classmethod
    async def create_tables(cls, db: Optional[Database] = None) -> List[str]:
        """
        Create tables for all registered models.

        Document stores create collections on first write; nothing is
        executed for them.
        """
        from ..db.engine import get_database

        target_db = db or cls._db or get_database()
        if target_db.dialect.document_store:
            return []
        statements = cls.create_table_statements(target_db.dialect)
        for sql in statements:
            await target_db.raw(sql)
        logger.info(f"Created {len(statements)} table(s)")
        return statements

    @classmethod
    async def drop_tables(cls, db: Optional[Database] = None) -> List[str]:
        """Drop all registered model tables (dangerous!)."""
        from ..db.engine import get_database

        target_db = db or cls._db or get_database()
        if target_db.dialect.document_store:
            return []
        statements: List[str] = []
        for model_cls in reversed(list(cls._models.values())):
            sql = f"DROP TABLE IF EXISTS {target_db.dialect.quote(model_cls._meta.table)}"
            await target_db.raw(sql)
            statements.append(sql)
        return statements

    @classmethod
    def reset(cls) -> None:
        """Clear registry (for testing)."""
        cls._models.clear()
        cls._db = None
