"""
Gambit Document Builder — statement intents rendered as document operations.

Same fluent vocabulary as the relational builder, rendered into a
``DocumentOperation`` the document adapter executes natively:

    where("age", ">", 18)          -> {"age": {"$gt": 18}}
    where("role", "!=", "admin")   -> {"role": {"$ne": "admin"}}
    where_in("id", [1, 2])         -> {"_id": {"$in": [1, 2]}}
    where_like("name", "jo%")      -> {"name": {"$regex": "^jo.*$", "$options": "i"}}
    where(...).or_where(...)       -> {"$or": [{...}, {...}]}

Identity is ``id`` on the record side and ``_id`` in the store; the
translation is applied to filters, documents, sort keys and projections
on the way in, and to result rows on the way out.

Joins, subqueries, SQL text predicates and HAVING have no document
equivalent and raise ``BuilderFault`` when rendered.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, TYPE_CHECKING

from ..faults import BuilderFault
from .base import BaseQueryBuilder, Predicate

if TYPE_CHECKING:
    from ..db.engine import Database
    from ..db.backends.base import QueryResult

__all__ = [
    "DocumentOperation",
    "DocumentQueryBuilder",
    "to_document",
    "from_document",
    "like_to_regex",
]

_RANGE_OPS = {
    "!=": "$ne",
    "<>": "$ne",
    ">": "$gt",
    ">=": "$gte",
    "<": "$lt",
    "<=": "$lte",
}

_KINDS = {
    "find": "select",
    "count": "select",
    "aggregate": "select",
    "insert": "insert",
    "insert_many": "insert",
    "update": "update",
    "delete": "delete",
}


def _doc_field(name: str) -> str:
    return "_id" if name == "id" else name


def to_document(data: Dict[str, Any]) -> Dict[str, Any]:
    """Record attributes -> stored document (``id`` becomes ``_id``)."""
    doc = {k: v for k, v in data.items() if k != "id"}
    if data.get("id") is not None:
        doc["_id"] = data["id"]
    return doc


def from_document(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Stored document -> record attributes (``_id`` becomes ``id``)."""
    row = {k: v for k, v in doc.items() if k != "_id"}
    if "_id" in doc:
        row["id"] = doc["_id"]
    return row


def like_to_regex(pattern: str) -> str:
    """
    Translate a SQL LIKE pattern into an anchored regular expression.

    ``%`` matches any run of characters, ``_`` exactly one; everything
    else is matched literally.
    """
    out = []
    for ch in pattern:
        if ch == "%":
            out.append(".*")
        elif ch == "_":
            out.append(".")
        else:
            out.append(re.escape(ch))
    return "^" + "".join(out) + "$"


@dataclass
class DocumentOperation:
    """A rendered document-store operation."""

    collection: str
    operation: str
    filter: Dict[str, Any] = field(default_factory=dict)
    update: Dict[str, Any] = field(default_factory=dict)
    documents: List[Dict[str, Any]] = field(default_factory=list)
    options: Dict[str, Any] = field(default_factory=dict)
    pipeline: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def kind(self) -> str:
        return _KINDS.get(self.operation, self.operation)

    @property
    def table(self) -> str:
        return self.collection

    @property
    def text(self) -> str:
        return f"{self.collection}.{self.operation}({self.filter or self.pipeline or self.documents})"

    @property
    def params(self) -> List[Any]:
        return []


class DocumentQueryBuilder(BaseQueryBuilder):
    """Document-store implementation of the builder interface."""

    supports_joins = False

    def __init__(self, collection: str, db: Optional["Database"] = None):
        super().__init__(collection, db)

    # ── Rendering ────────────────────────────────────────────────────

    def render(self) -> DocumentOperation:
        if self._joins:
            raise BuilderFault(self.table, "joins are not supported by document stores")
        if self._having:
            raise BuilderFault(self.table, "HAVING is not supported by document stores; use group_by with an aggregate")
        if self._distinct:
            raise BuilderFault(self.table, "DISTINCT is not supported by document stores")

        if self._kind == "insert":
            payload = self._require_payload()
            if isinstance(payload, list):
                if not all(payload):
                    raise BuilderFault(self.table, "insert rows must not be empty")
                return DocumentOperation(
                    self.table, "insert_many", documents=[to_document(d) for d in payload],
                )
            return DocumentOperation(self.table, "insert", documents=[to_document(payload)])

        filt = self.build_filter()

        if self._kind == "update":
            payload = self._require_payload()
            update: Dict[str, Any] = {}
            if payload:
                update["$set"] = to_document(payload)
            if self._increments:
                update["$inc"] = dict(self._increments)
            return DocumentOperation(self.table, "update", filter=filt, update=update)

        if self._kind == "delete":
            return DocumentOperation(self.table, "delete", filter=filt)

        agg = self._aggregate
        if agg is not None:
            if agg.function == "COUNT" and not self._group_by:
                return DocumentOperation(self.table, "count", filter=filt, options={"as": agg.name})
            return DocumentOperation(self.table, "aggregate", filter=filt, pipeline=self._build_pipeline(filt))

        return DocumentOperation(self.table, "find", filter=filt, options=self._build_options())

    def to_operation(self) -> DocumentOperation:
        return self.render()

    async def execute(self) -> "QueryResult":
        result = await super().execute()
        result.rows = [from_document(r) for r in result.rows]
        return result

    # ── Filters ──────────────────────────────────────────────────────

    def build_filter(self) -> Dict[str, Any]:
        """AND binds tighter than OR: each ``or_*`` call opens a new group."""
        return self._filter_for(self._wheres)

    def _filter_for(self, predicates: List[Predicate]) -> Dict[str, Any]:
        groups: List[List[Predicate]] = []
        for pred in predicates:
            if not groups or pred.boolean == "OR":
                groups.append([])
            groups[-1].append(pred)

        rendered = [self._merge_group(g) for g in groups]
        if not rendered:
            return {}
        if len(rendered) == 1:
            return rendered[0]
        return {"$or": rendered}

    def _merge_group(self, predicates: List[Predicate]) -> Dict[str, Any]:
        merged: Dict[str, Any] = {}
        extra: List[Dict[str, Any]] = []
        for pred in predicates:
            if pred.kind == "group":
                nested = self._filter_for(pred.value)
                if nested:
                    extra.append(nested)
                continue
            for key, cond in self._predicate_terms(pred):
                if key not in merged:
                    merged[key] = cond
                elif (
                    isinstance(merged[key], dict) and isinstance(cond, dict)
                    and not set(merged[key]) & set(cond)
                    and all(k.startswith("$") for k in merged[key])
                    and all(k.startswith("$") for k in cond)
                ):
                    merged[key] = {**merged[key], **cond}
                else:
                    extra.append({key: cond})

        result = {k: _collapse_eq(v) for k, v in merged.items()}
        if extra:
            result["$and"] = list(result.get("$and", [])) + [
                {k: _collapse_eq(v) for k, v in e.items()} for e in extra
            ]
        return result

    def _predicate_terms(self, pred: Predicate) -> List[Tuple[str, Any]]:
        kind = pred.kind
        if kind == "raw":
            if not isinstance(pred.value, dict):
                raise BuilderFault(self.table, "raw document predicates must be filter mappings")
            return [(_doc_field(k), v) for k, v in pred.value.items()]
        if kind == "subquery":
            raise BuilderFault(self.table, "subqueries are not supported by document stores")

        key = _doc_field(pred.field)
        if kind == "basic":
            if pred.operator == "=":
                return [(key, {"$eq": pred.value})]
            return [(key, {_RANGE_OPS[pred.operator]: pred.value})]
        if kind == "in":
            return [(key, {"$in": list(pred.value)})]
        if kind == "not_in":
            return [(key, {"$nin": list(pred.value)})]
        if kind == "null":
            return [(key, {"$eq": None})]
        if kind == "not_null":
            return [(key, {"$ne": None})]
        if kind == "between":
            low, high = pred.value
            return [(key, {"$gte": low, "$lte": high})]
        if kind == "not_between":
            low, high = pred.value
            return [(key, {"$not": {"$gte": low, "$lte": high}})]
        if kind == "like":
            return [(key, {"$regex": like_to_regex(pred.value), "$options": "i"})]
        if kind == "not_like":
            return [(key, {"$not": {"$regex": like_to_regex(pred.value), "$options": "i"}})]
        raise BuilderFault(self.table, f"unknown predicate kind {kind!r}")

    # ── Options / pipelines ──────────────────────────────────────────

    def _build_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {}
        if self._order_by:
            options["sort"] = [
                (_doc_field(o.field), 1 if o.direction == "ASC" else -1)
                for o in self._order_by
            ]
        if self._offset is not None:
            options["skip"] = int(self._offset)
        if self._limit is not None:
            options["limit"] = int(self._limit)
        if self._columns and self._columns != ["*"]:
            options["projection"] = {_doc_field(c): 1 for c in self._columns}
        return options

    def _build_pipeline(self, filt: Dict[str, Any]) -> List[Dict[str, Any]]:
        agg = self._aggregate
        if agg.function == "COUNT":
            accumulator: Any = {"$sum": 1}
        else:
            if not agg.field:
                raise BuilderFault(self.table, f"{agg.function} needs a field")
            accumulator = {f"${agg.function.lower()}": f"${_doc_field(agg.field)}"}

        group_id: Any = None
        if self._group_by:
            group_id = {g: f"${_doc_field(g)}" for g in self._group_by}

        pipeline: List[Dict[str, Any]] = []
        if filt:
            pipeline.append({"$match": filt})
        pipeline.append({"$group": {"_id": group_id, agg.name: accumulator}})

        projection: Dict[str, Any] = {"_id": 0, agg.name: 1}
        for g in self._group_by:
            projection[g] = f"$_id.{g}"
        pipeline.append({"$project": projection})

        if self._order_by:
            pipeline.append({"$sort": {o.field: 1 if o.direction == "ASC" else -1 for o in self._order_by}})
        if self._offset is not None:
            pipeline.append({"$skip": int(self._offset)})
        if self._limit is not None:
            pipeline.append({"$limit": int(self._limit)})
        return pipeline


def _collapse_eq(cond: Any) -> Any:
    if isinstance(cond, dict) and list(cond) == ["$eq"]:
        return cond["$eq"]
    return cond
