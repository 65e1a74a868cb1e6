"""
Gambit Scopes — named, reusable builder mutations.

    @User.scope("active")
    def active(qb):
        return qb.where("status", "=", "active")

    @User.scope("older_than")
    def older_than(qb, age):
        return qb.where("age", ">", age)

    User.add_global_scope("tenant", lambda qb: qb.where("tenant_id", "=", 7))

    users = await User.query().scope("older_than", 30).order_by("name").get()
    everyone = await User.query().without_global_scope("tenant").count()

A scope receives the builder (plus any arguments) and either mutates it
in place or returns a builder to continue with.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, List, Optional, Set, Type, TYPE_CHECKING

from ..query.base import BaseQueryBuilder

if TYPE_CHECKING:
    from .base import Model

__all__ = ["ScopedQuery"]

# Builder methods replayed onto the read builder at execution
_PROXIED = frozenset({
    "where",
    "or_where",
    "where_in",
    "where_not_in",
    "or_where_in",
    "where_null",
    "where_not_null",
    "or_where_null",
    "where_between",
    "where_not_between",
    "where_like",
    "where_not_like",
    "where_raw",
    "where_group",
    "or_where_group",
    "order_by",
    "limit",
    "offset",
})


class ScopedQuery:
    """
    Chainable read over one model type.

    Calls are recorded and replayed at execution, after the type's
    global scopes (minus any removed with ``without_global_scope``) and
    before the soft-delete filter.
    """

    def __init__(self, model_cls: Type[Model]):
        self.model_cls = model_cls
        self._steps: List[Callable[[BaseQueryBuilder], Any]] = []
        self._without: Set[str] = set()

    def __repr__(self) -> str:
        return f"<ScopedQuery {self.model_cls.__name__} steps={len(self._steps)}>"

    def __getattr__(self, name: str) -> Any:
        if name not in _PROXIED:
            raise AttributeError(f"{type(self).__name__!s} has no attribute {name!r}")

        def _record(*args: Any, **kwargs: Any) -> ScopedQuery:
            self._steps.append(lambda qb: getattr(qb, name)(*args, **kwargs))
            return self

        return _record

    # ── Scopes ───────────────────────────────────────────────────────

    def scope(self, name: str, *args: Any, **kwargs: Any) -> ScopedQuery:
        """Apply local scope ``name``; raises ScopeNotFoundFault if unknown."""
        fn = self.model_cls._state.get_scope(name)
        self._steps.append(lambda qb: fn(qb, *args, **kwargs))
        return self

    def scopes(self, *names: str) -> ScopedQuery:
        """Apply several argument-less local scopes in order."""
        for name in names:
            self.scope(name)
        return self

    def without_global_scope(self, name: str) -> ScopedQuery:
        self._without.add(name)
        return self

    def without_global_scopes(self, names: Optional[Iterable[str]] = None) -> ScopedQuery:
        """Skip the named global scopes, or all of them."""
        if names is None:
            names = self.model_cls._state.global_scopes.keys()
        self._without.update(names)
        return self

    # ── Building ─────────────────────────────────────────────────────

    def build(self) -> BaseQueryBuilder:
        """Read builder with every recorded step applied."""
        lifecycle = self.model_cls._lifecycle
        state = self.model_cls._state
        qb = state.apply_global_scopes(lifecycle.builder(), tuple(self._without))
        start = len(qb.wheres)
        for step in self._steps:
            result = step(qb)
            if isinstance(result, BaseQueryBuilder):
                qb = result
        # caller and local-scope predicates stay inside one group
        qb.isolate_wheres(start)
        return lifecycle.apply_trashed(qb)

    # ── Terminals ────────────────────────────────────────────────────

    async def get(self, include: Optional[Iterable[str]] = None) -> List[Model]:
        return await self.model_cls._lifecycle.fetch(self.build(), include)

    async def first(self, include: Optional[Iterable[str]] = None) -> Optional[Model]:
        records = await self.model_cls._lifecycle.fetch(self.build().limit(1), include)
        return records[0] if records else None

    async def count(self) -> int:
        value = await self.build().count().scalar()
        return int(value or 0)

    async def exists(self) -> bool:
        return await self.count() > 0

    async def pluck(self, column: str) -> List[Any]:
        return await self.model_cls._lifecycle.pluck_from(self.build(), column)
