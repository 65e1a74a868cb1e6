"""
Gambit SQL Builder — safe, parameterized SQL generation.

Renders a statement intent into SQL text plus an ordered bind-parameter
list. All user values are bound as parameters; placeholders, quoting
and boolean binding come from the dialect table.

Parameter order is the textual order of placeholders:
SET values (update), then WHERE, then HAVING. A subquery's parameters
are spliced in at the subquery's position.

Usage:
    from gambit.query.sql import QueryBuilder

    stmt = (
        QueryBuilder("users")
        .select("id", "name")
        .where("age", ">", 18)
        .where_in("role", ["admin", "staff"])
        .order_by("name")
        .limit(10)
        .to_sql()
    )
    # stmt.text = 'SELECT "id", "name" FROM "users" WHERE "age" > ? AND "role" IN (?, ?) ORDER BY "name" ASC LIMIT 10'
    # stmt.params = [18, "admin", "staff"]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, TYPE_CHECKING

from ..faults import BuilderFault
from .base import BaseQueryBuilder, Predicate
from .dialects import Dialect, get_dialect

if TYPE_CHECKING:
    from ..db.engine import Database

__all__ = ["Statement", "QueryBuilder"]


@dataclass
class Statement:
    """Rendered SQL: text, ordered params, and the statement kind."""

    text: str
    params: List[Any] = field(default_factory=list)
    kind: str = "select"
    table: str = ""

    def __iter__(self):
        # allows ``sql, params = builder.to_sql()``
        yield self.text
        yield self.params


class _ParamCollector:
    """Allocates placeholders in textual order."""

    def __init__(self, dialect: Dialect):
        self.dialect = dialect
        self.values: List[Any] = []

    def add(self, value: Any) -> str:
        self.values.append(self.dialect.bind(value))
        return self.dialect.placeholder(len(self.values))

    def splice_raw(self, sql: str, params: Sequence[Any]) -> str:
        """
        Re-number ``?`` placeholders in raw SQL text.

        String-literal safe — skips ``?`` inside single-quoted strings.
        """
        result: List[str] = []
        remaining = list(params)
        in_string = False
        i = 0
        while i < len(sql):
            ch = sql[i]
            if ch == "'" and not in_string:
                in_string = True
                result.append(ch)
            elif ch == "'" and in_string:
                if i + 1 < len(sql) and sql[i + 1] == "'":
                    result.append("''")
                    i += 2
                    continue
                in_string = False
                result.append(ch)
            elif ch == "?" and not in_string:
                if not remaining:
                    raise BuilderFault("<raw>", f"not enough parameters for raw expression {sql!r}")
                result.append(self.add(remaining.pop(0)))
            else:
                result.append(ch)
            i += 1
        if remaining:
            raise BuilderFault("<raw>", f"too many parameters for raw expression {sql!r}")
        return "".join(result)


_JOIN_KEYWORDS = {
    "INNER": "INNER JOIN",
    "LEFT": "LEFT JOIN",
    "RIGHT": "RIGHT JOIN",
    "FULL": "FULL OUTER JOIN",
}


class QueryBuilder(BaseQueryBuilder):
    """
    Relational statement builder.

    One builder, one statement: the last of ``insert``/``update``/
    ``delete`` called wins, otherwise it renders a SELECT.
    """

    supports_joins = True

    def __init__(self, table: str, db: Optional["Database"] = None, dialect: str | Dialect = "sqlite"):
        super().__init__(table, db)
        self.dialect = get_dialect(dialect)

    def render(self) -> Statement:
        collector = _ParamCollector(self.dialect)
        if self._kind == "insert":
            text = self._render_insert(collector)
        elif self._kind == "update":
            text = self._render_update(collector)
        elif self._kind == "delete":
            text = self._render_delete(collector)
        else:
            text = self._render_select(collector)
        return Statement(text, collector.values, self._kind, self.table)

    def to_sql(self) -> Statement:
        return self.render()

    # ── SELECT ───────────────────────────────────────────────────────

    def _render_select(self, collector: _ParamCollector) -> str:
        q = self.dialect.quote
        parts: List[str] = []

        distinct = "DISTINCT " if self._distinct else ""
        if self._aggregate is not None:
            agg = self._aggregate
            target = q(agg.field) if agg.field else "*"
            cols = f"{agg.function}({target}) AS {q(agg.name)}"
        elif self._columns:
            cols = ", ".join(q(c) for c in self._columns)
        else:
            cols = "*"
        parts.append(f"SELECT {distinct}{cols}")
        parts.append(f"FROM {q(self.table)}")

        for join in self._joins:
            if join.kind == "FULL" and not self.dialect.supports_full_join:
                raise BuilderFault(self.table, f"{self.dialect.name} does not support FULL OUTER JOIN")
            keyword = _JOIN_KEYWORDS.get(join.kind)
            if keyword is None:
                raise BuilderFault(self.table, f"unknown join type {join.kind!r}")
            target = q(join.table)
            if join.alias:
                target += f" AS {q(join.alias)}"
            parts.append(f"{keyword} {target} ON {q(join.left)} = {q(join.right)}")

        where = self._render_predicates(self._wheres, collector)
        if where:
            parts.append(f"WHERE {where}")

        if self._group_by:
            parts.append("GROUP BY " + ", ".join(q(c) for c in self._group_by))

        having = self._render_predicates(self._having, collector)
        if having:
            parts.append(f"HAVING {having}")

        if self._order_by:
            parts.append("ORDER BY " + ", ".join(
                f"{q(o.field)} {o.direction}" for o in self._order_by
            ))

        if self._limit is not None:
            parts.append(f"LIMIT {int(self._limit)}")
        elif self._offset is not None and self.dialect.unbounded_limit:
            parts.append(self.dialect.unbounded_limit)
        if self._offset is not None:
            parts.append(f"OFFSET {int(self._offset)}")

        return " ".join(parts)

    # ── INSERT / UPDATE / DELETE ─────────────────────────────────────

    def _render_insert(self, collector: _ParamCollector) -> str:
        q = self.dialect.quote
        payload = self._require_payload()
        rows: List[Dict[str, Any]] = payload if isinstance(payload, list) else [payload]
        if not all(rows):
            raise BuilderFault(self.table, "insert rows must not be empty")

        columns: List[str] = []
        for row in rows:
            for col in row:
                if col not in columns:
                    columns.append(col)

        groups = []
        for row in rows:
            groups.append("(" + ", ".join(collector.add(row.get(c)) for c in columns) + ")")

        sql = (
            f"INSERT INTO {q(self.table)} ({', '.join(q(c) for c in columns)}) "
            f"VALUES {', '.join(groups)}"
        )
        if self._returning and self.dialect.supports_returning:
            sql += f" RETURNING {q(self._returning)}"
        return sql

    def _render_update(self, collector: _ParamCollector) -> str:
        q = self.dialect.quote
        payload = self._require_payload()
        if not isinstance(payload, dict):
            raise BuilderFault(self.table, "update payload must be a mapping")
        assignments = [f"{q(k)} = {collector.add(v)}" for k, v in payload.items()]
        for col, amount in self._increments.items():
            assignments.append(f"{q(col)} = {q(col)} + {collector.add(amount)}")
        sets = ", ".join(assignments)
        sql = f"UPDATE {q(self.table)} SET {sets}"
        where = self._render_predicates(self._wheres, collector)
        if where:
            sql += f" WHERE {where}"
        return sql

    def _render_delete(self, collector: _ParamCollector) -> str:
        sql = f"DELETE FROM {self.dialect.quote(self.table)}"
        where = self._render_predicates(self._wheres, collector)
        if where:
            sql += f" WHERE {where}"
        return sql

    # ── Predicates ───────────────────────────────────────────────────

    def _render_predicates(self, predicates: List[Predicate], collector: _ParamCollector) -> str:
        out: List[str] = []
        for i, pred in enumerate(predicates):
            fragment = self._render_predicate(pred, collector)
            if i == 0:
                out.append(fragment)
            else:
                out.append(f"{pred.boolean} {fragment}")
        return " ".join(out)

    def _render_predicate(self, pred: Predicate, collector: _ParamCollector) -> str:
        q = self.dialect.quote
        kind = pred.kind

        if kind == "basic":
            if pred.value is None and pred.operator == "=":
                return f"{q(pred.field)} IS NULL"
            if pred.value is None and pred.operator in ("!=", "<>"):
                return f"{q(pred.field)} IS NOT NULL"
            return f"{q(pred.field)} {pred.operator} {collector.add(pred.value)}"

        if kind in ("in", "not_in"):
            if not pred.value:
                # empty IN matches nothing, empty NOT IN matches everything
                return "1 = 0" if kind == "in" else "1 = 1"
            placeholders = ", ".join(collector.add(v) for v in pred.value)
            return f"{q(pred.field)} {pred.operator} ({placeholders})"

        if kind == "null":
            return f"{q(pred.field)} IS NULL"
        if kind == "not_null":
            return f"{q(pred.field)} IS NOT NULL"

        if kind in ("between", "not_between"):
            low, high = pred.value
            return f"{q(pred.field)} {pred.operator} {collector.add(low)} AND {collector.add(high)}"

        if kind in ("like", "not_like"):
            return f"{q(pred.field)} {pred.operator} {collector.add(pred.value)}"

        if kind == "raw":
            if not isinstance(pred.value, str):
                raise BuilderFault(self.table, "raw SQL predicates must be strings")
            return f"({collector.splice_raw(pred.value, pred.params)})"

        if kind == "group":
            return f"({self._render_predicates(pred.value, collector)})"

        if kind == "subquery":
            sub = pred.value
            if not isinstance(sub, QueryBuilder):
                raise BuilderFault(self.table, "subqueries must be relational builders")
            inner = sub._render_select_into(collector, self.dialect)
            return f"{q(pred.field)} {pred.operator} ({inner})"

        raise BuilderFault(self.table, f"unknown predicate kind {kind!r}")

    def _render_select_into(self, collector: _ParamCollector, dialect: Dialect) -> str:
        """Render this builder as a nested SELECT sharing the outer placeholder sequence."""
        own = self.dialect
        self.dialect = dialect
        try:
            return self._render_select(collector)
        finally:
            self.dialect = own
