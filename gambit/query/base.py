"""
Gambit Query — shared builder interface.

A builder accumulates a *statement intent* (table, predicates, joins,
grouping, ordering, paging, projection and a write payload) through a
fluent API. Two implementations render that intent:

- ``QueryBuilder`` (gambit.query.sql) -> parameterized SQL ``Statement``
- ``DocumentQueryBuilder`` (gambit.query.document) -> ``DocumentOperation``

The record layer only ever talks to this interface; which renderer it
gets is decided once, by ``Database.builder()``.

Usage:
    qb = db.builder("users")
    rows = await (
        qb.where("age", ">", 18)
          .or_where("role", "=", "admin")
          .order_by("name")
          .limit(10)
          .get()
    )
"""

from __future__ import annotations

import copy
import dataclasses
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union, TYPE_CHECKING

from ..faults import BuilderFault

if TYPE_CHECKING:
    from ..db.engine import Database
    from ..db.backends.base import QueryResult

__all__ = [
    "OPERATORS",
    "Predicate",
    "Join",
    "OrderClause",
    "Aggregate",
    "BaseQueryBuilder",
]

OPERATORS = frozenset({
    "=", "!=", "<>", ">", ">=", "<", "<=",
    "LIKE", "NOT LIKE", "IN", "NOT IN",
})

_MISSING = object()


# ── Intent nodes ─────────────────────────────────────────────────────

@dataclass
class Predicate:
    """
    One filter condition.

    ``kind`` selects the rendering: basic, in, not_in, null, not_null,
    between, not_between, like, not_like, raw, subquery, group.
    A group holds nested predicates in ``value`` and renders as one
    parenthesized term.
    ``boolean`` is the connector to the preceding predicate.
    """

    kind: str
    field: Optional[str] = None
    operator: str = "="
    value: Any = None
    boolean: str = "AND"
    params: List[Any] = dataclasses.field(default_factory=list)


@dataclass
class Join:
    kind: str  # INNER | LEFT | RIGHT | FULL
    table: str
    left: str
    right: str
    alias: Optional[str] = None


@dataclass
class OrderClause:
    field: str
    direction: str = "ASC"


@dataclass
class Aggregate:
    function: str  # COUNT | SUM | AVG | MAX | MIN
    field: Optional[str] = None
    alias: Optional[str] = None

    @property
    def name(self) -> str:
        return self.alias or self.function.lower()


# ── Builder interface ────────────────────────────────────────────────

class BaseQueryBuilder(ABC):
    """
    Fluent statement-intent accumulator.

    Predicates, joins, group_by, having and order_by accumulate in call
    order. ``select``/aggregates, ``limit``, ``offset`` and the write
    kind (``insert``/``update``/``delete``) are last-writer-wins.
    """

    supports_joins: bool = True

    def __init__(self, table: str, db: Optional["Database"] = None):
        self.table = table
        self._db = db
        self._kind: str = "select"
        self._columns: List[str] = []
        self._aggregate: Optional[Aggregate] = None
        self._distinct: bool = False
        self._wheres: List[Predicate] = []
        self._joins: List[Join] = []
        self._group_by: List[str] = []
        self._having: List[Predicate] = []
        self._order_by: List[OrderClause] = []
        self._limit: Optional[int] = None
        self._offset: Optional[int] = None
        self._payload: Union[Dict[str, Any], List[Dict[str, Any]], None] = None
        self._increments: Dict[str, Any] = {}
        self._returning: Optional[str] = None

    # ── Projection ───────────────────────────────────────────────────

    def select(self, *fields: Union[str, Sequence[str]]) -> BaseQueryBuilder:
        """Set the projection. Replaces any earlier select or aggregate."""
        columns: List[str] = []
        for f in fields:
            if isinstance(f, (list, tuple)):
                columns.extend(f)
            else:
                columns.append(f)
        self._columns = columns
        self._aggregate = None
        return self

    def distinct(self) -> BaseQueryBuilder:
        self._distinct = True
        return self

    def count(self, field: Optional[str] = None, alias: Optional[str] = None) -> BaseQueryBuilder:
        return self._set_aggregate("COUNT", field, alias)

    def sum(self, field: str, alias: Optional[str] = None) -> BaseQueryBuilder:
        return self._set_aggregate("SUM", field, alias)

    def avg(self, field: str, alias: Optional[str] = None) -> BaseQueryBuilder:
        return self._set_aggregate("AVG", field, alias)

    def max(self, field: str, alias: Optional[str] = None) -> BaseQueryBuilder:
        return self._set_aggregate("MAX", field, alias)

    def min(self, field: str, alias: Optional[str] = None) -> BaseQueryBuilder:
        return self._set_aggregate("MIN", field, alias)

    def _set_aggregate(self, function: str, field: Optional[str], alias: Optional[str]) -> BaseQueryBuilder:
        self._aggregate = Aggregate(function, field, alias)
        self._columns = []
        return self

    @property
    def aggregate(self) -> Optional[Aggregate]:
        return self._aggregate

    # ── Predicates ───────────────────────────────────────────────────

    def where(self, field: str, operator: Any = "=", value: Any = _MISSING, *, boolean: str = "AND") -> BaseQueryBuilder:
        """
        Add a comparison predicate.

        ``where("age", ">", 18)``; the two-argument form
        ``where("name", "Ann")`` means equality. ``IN``/``NOT IN`` with a
        sequence are routed to ``where_in``/``where_not_in``.
        """
        if value is _MISSING:
            operator, value = "=", operator
        op = self._check_operator(operator)
        if op == "IN":
            return self.where_in(field, value, boolean=boolean)
        if op == "NOT IN":
            return self.where_not_in(field, value, boolean=boolean)
        if op == "LIKE":
            return self.where_like(field, value, boolean=boolean)
        if op == "NOT LIKE":
            return self.where_not_like(field, value, boolean=boolean)
        self._wheres.append(Predicate("basic", field, op, value, boolean))
        return self

    def or_where(self, field: str, operator: Any = "=", value: Any = _MISSING) -> BaseQueryBuilder:
        return self.where(field, operator, value, boolean="OR")

    def where_in(self, field: str, values: Sequence[Any], *, boolean: str = "AND") -> BaseQueryBuilder:
        self._wheres.append(Predicate("in", field, "IN", list(values), boolean))
        return self

    def where_not_in(self, field: str, values: Sequence[Any], *, boolean: str = "AND") -> BaseQueryBuilder:
        self._wheres.append(Predicate("not_in", field, "NOT IN", list(values), boolean))
        return self

    def or_where_in(self, field: str, values: Sequence[Any]) -> BaseQueryBuilder:
        return self.where_in(field, values, boolean="OR")

    def where_null(self, field: str, *, boolean: str = "AND") -> BaseQueryBuilder:
        self._wheres.append(Predicate("null", field, "IS NULL", None, boolean))
        return self

    def where_not_null(self, field: str, *, boolean: str = "AND") -> BaseQueryBuilder:
        self._wheres.append(Predicate("not_null", field, "IS NOT NULL", None, boolean))
        return self

    def or_where_null(self, field: str) -> BaseQueryBuilder:
        return self.where_null(field, boolean="OR")

    def where_between(self, field: str, low: Any, high: Any, *, boolean: str = "AND") -> BaseQueryBuilder:
        self._wheres.append(Predicate("between", field, "BETWEEN", (low, high), boolean))
        return self

    def where_not_between(self, field: str, low: Any, high: Any, *, boolean: str = "AND") -> BaseQueryBuilder:
        self._wheres.append(Predicate("not_between", field, "NOT BETWEEN", (low, high), boolean))
        return self

    def where_like(self, field: str, pattern: str, *, boolean: str = "AND") -> BaseQueryBuilder:
        self._wheres.append(Predicate("like", field, "LIKE", pattern, boolean))
        return self

    def where_not_like(self, field: str, pattern: str, *, boolean: str = "AND") -> BaseQueryBuilder:
        self._wheres.append(Predicate("not_like", field, "NOT LIKE", pattern, boolean))
        return self

    def where_raw(self, expression: Any, params: Optional[Sequence[Any]] = None, *, boolean: str = "AND") -> BaseQueryBuilder:
        """Add a backend-native predicate (SQL text with ``?`` placeholders, or a filter dict)."""
        self._wheres.append(Predicate("raw", None, "RAW", expression, boolean, list(params or [])))
        return self

    def or_where_raw(self, expression: Any, params: Optional[Sequence[Any]] = None) -> BaseQueryBuilder:
        return self.where_raw(expression, params, boolean="OR")

    def where_subquery(self, field: str, operator: str, subquery: BaseQueryBuilder, *, boolean: str = "AND") -> BaseQueryBuilder:
        op = self._check_operator(operator)
        self._wheres.append(Predicate("subquery", field, op, subquery, boolean))
        return self

    def where_group(self, callback: Any, *, boolean: str = "AND") -> BaseQueryBuilder:
        """
        Add a nested group: ``callback`` receives a fresh builder and its
        predicates render as one parenthesized term.

        ``where("a", 1).where_group(lambda g: g.where("b", 2).or_where("c", 3))``
        -> ``a = 1 AND (b = 2 OR c = 3)``
        """
        nested = type(self)(self.table)
        callback(nested)
        if nested._wheres:
            self._wheres.append(Predicate("group", None, "GROUP", nested._wheres, boolean))
        return self

    def or_where_group(self, callback: Any) -> BaseQueryBuilder:
        return self.where_group(callback, boolean="OR")

    def isolate_wheres(self, start: int = 0) -> BaseQueryBuilder:
        """
        Fold the predicates from ``start`` onward into one AND-ed group
        when any of them joins with OR, so predicates added before or
        after still constrain every row.
        """
        tail = self._wheres[start:]
        if any(p.boolean == "OR" for p in tail):
            self._wheres[start:] = [Predicate("group", None, "GROUP", tail, "AND")]
        return self

    @property
    def wheres(self) -> List[Predicate]:
        return list(self._wheres)

    # ── Joins ────────────────────────────────────────────────────────

    def join(self, table: str, on: Dict[str, str], kind: str = "INNER", alias: Optional[str] = None) -> BaseQueryBuilder:
        """Add a join. ``on`` is ``{"left": "users.id", "right": "posts.user_id"}``."""
        try:
            left, right = on["left"], on["right"]
        except (KeyError, TypeError):
            raise BuilderFault(self.table, "join condition needs 'left' and 'right' columns") from None
        self._joins.append(Join(kind.upper(), table, left, right, alias))
        return self

    def inner_join(self, table: str, on: Dict[str, str], alias: Optional[str] = None) -> BaseQueryBuilder:
        return self.join(table, on, "INNER", alias)

    def left_join(self, table: str, on: Dict[str, str], alias: Optional[str] = None) -> BaseQueryBuilder:
        return self.join(table, on, "LEFT", alias)

    def right_join(self, table: str, on: Dict[str, str], alias: Optional[str] = None) -> BaseQueryBuilder:
        return self.join(table, on, "RIGHT", alias)

    def full_join(self, table: str, on: Dict[str, str], alias: Optional[str] = None) -> BaseQueryBuilder:
        return self.join(table, on, "FULL", alias)

    # ── Grouping / ordering / paging ─────────────────────────────────

    def group_by(self, *fields: str) -> BaseQueryBuilder:
        self._group_by.extend(fields)
        return self

    def having(self, field: str, operator: str, value: Any) -> BaseQueryBuilder:
        op = self._check_operator(operator)
        self._having.append(Predicate("basic", field, op, value))
        return self

    def order_by(self, field: str, direction: str = "ASC") -> BaseQueryBuilder:
        """
        Add an ORDER BY clause.

        Prefix with '-' for DESC: ``order_by("-created_at")``.
        """
        if field.startswith("-"):
            field, direction = field[1:], "DESC"
        direction = direction.upper()
        if direction not in ("ASC", "DESC"):
            raise BuilderFault(self.table, f"invalid sort direction {direction!r}")
        self._order_by.append(OrderClause(field, direction))
        return self

    def limit(self, n: Optional[int]) -> BaseQueryBuilder:
        self._limit = n
        return self

    def offset(self, n: Optional[int]) -> BaseQueryBuilder:
        self._offset = n
        return self

    # ── Write kinds ──────────────────────────────────────────────────

    def insert(self, payload: Union[Dict[str, Any], List[Dict[str, Any]], None]) -> BaseQueryBuilder:
        self._kind = "insert"
        self._payload = payload
        return self

    def update(self, payload: Optional[Dict[str, Any]]) -> BaseQueryBuilder:
        self._kind = "update"
        self._payload = payload
        return self

    def delete(self) -> BaseQueryBuilder:
        self._kind = "delete"
        self._payload = None
        return self

    def increment(self, column: str, amount: Any = 1) -> BaseQueryBuilder:
        """
        Add ``amount`` to ``column`` in place (an update).

        Combines with an ``update`` payload on the same builder.
        """
        self._kind = "update"
        self._increments[column] = self._increments.get(column, 0) + amount
        return self

    def decrement(self, column: str, amount: Any = 1) -> BaseQueryBuilder:
        return self.increment(column, -amount)

    def returning(self, column: str) -> BaseQueryBuilder:
        """Ask for ``column`` back from an insert where the backend can return it."""
        self._returning = column
        return self

    @property
    def kind(self) -> str:
        return self._kind

    # ── Rendering / execution ────────────────────────────────────────

    @abstractmethod
    def render(self) -> Any:
        """Render the accumulated intent into a backend-native statement."""

    def clone(self) -> BaseQueryBuilder:
        """Independent copy of this intent, sharing the database handle."""
        db, self._db = self._db, None
        try:
            twin = copy.deepcopy(self)
        finally:
            self._db = db
        twin._db = db
        return twin

    async def execute(self) -> "QueryResult":
        if self._db is None:
            from ..faults import DatabaseConnectionFault
            raise DatabaseConnectionFault("<unbound>", f"builder for '{self.table}' has no database")
        return await self._db.execute(self.render())

    async def get(self) -> List[Dict[str, Any]]:
        """Execute a read and return its rows."""
        result = await self.execute()
        return result.rows

    async def first(self) -> Optional[Dict[str, Any]]:
        self.limit(1)
        rows = await self.get()
        return rows[0] if rows else None

    async def scalar(self) -> Any:
        """Execute an aggregate read and return its single value."""
        result = await self.execute()
        if not result.rows:
            return None
        row = result.rows[0]
        if self._aggregate is not None and self._aggregate.name in row:
            return row[self._aggregate.name]
        return next(iter(row.values()), None)

    # ── Helpers ──────────────────────────────────────────────────────

    def _check_operator(self, operator: Any) -> str:
        op = str(operator).strip().upper()
        if op not in OPERATORS:
            raise BuilderFault(self.table, f"unsupported operator {operator!r}")
        return op

    def _require_payload(self) -> Any:
        if self._kind == "update" and self._increments and not self._payload:
            return {}
        if not self._payload:
            raise BuilderFault(self.table, f"{self._kind} requires a non-empty payload")
        return self._payload

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self._kind} {self.table!r}>"
