"""
Gambit DB Backend — in-process document store.

Executes ``DocumentOperation`` objects against plain Python dicts held
in memory, using the same filter and update vocabulary a document
database understands:

- filters: $eq $ne $gt $gte $lt $lte $in $nin $regex/$options $not
  $exists, combined with $and / $or
- updates: $set, $inc, $unset
- find options: sort, skip, limit, projection
- pipelines: $match $group $project $sort $skip $limit

Documents get a hex ``_id`` when inserted without one. Transactions
snapshot every collection on ``begin`` and restore it on ``rollback``.

Usage:
    db = Database("memory://")
    await db.connect()
"""

from __future__ import annotations

import asyncio
import copy
import logging
import re
import uuid
from typing import Any, Callable, Dict, List, Optional

from .base import DatabaseAdapter, AdapterCapabilities, QueryResult

logger = logging.getLogger("gambit.db.backends.memory")

__all__ = ["MemoryDocumentAdapter"]

_MISSING = object()


class MemoryDocumentAdapter(DatabaseAdapter):
    """Document-store adapter backed by in-process dicts."""

    capabilities = AdapterCapabilities(
        supports_returning=True,
        supports_joins=False,
        supports_transactions=True,
        document_store=True,
        param_style="none",
        name="document",
    )

    def __init__(self):
        self._collections: Dict[str, List[Dict[str, Any]]] = {}
        self._snapshot: Optional[Dict[str, List[Dict[str, Any]]]] = None
        self._connected = False
        self._lock = asyncio.Lock()

    async def connect(self, url: str, **options) -> None:
        self._connected = True
        logger.info(f"Document store connected: {url}")

    async def disconnect(self) -> None:
        self._connected = False
        logger.info("Document store disconnected")

    def collection(self, name: str) -> List[Dict[str, Any]]:
        """Direct access to a collection's stored documents."""
        return self._collections.setdefault(name, [])

    async def execute(self, statement: Any) -> QueryResult:
        if not self._connected:
            raise RuntimeError("Not connected")
        handler: Optional[Callable[[Any], QueryResult]] = getattr(
            self, f"_op_{statement.operation}", None
        )
        if handler is None:
            raise ValueError(f"Unsupported document operation: {statement.operation!r}")
        async with self._lock:
            return handler(statement)

    # ── Operations ───────────────────────────────────────────────────

    def _op_find(self, op: Any) -> QueryResult:
        docs = [d for d in self.collection(op.collection) if matches(d, op.filter)]
        options = op.options or {}
        if options.get("sort"):
            docs = _sort(docs, list(options["sort"]))
        skip = options.get("skip") or 0
        docs = docs[skip:]
        if options.get("limit") is not None:
            docs = docs[: options["limit"]]
        projection = options.get("projection")
        rows = [_project(d, projection) if projection else copy.deepcopy(d) for d in docs]
        return QueryResult(rows=rows, row_count=len(rows))

    def _op_count(self, op: Any) -> QueryResult:
        n = sum(1 for d in self.collection(op.collection) if matches(d, op.filter))
        alias = (op.options or {}).get("as", "count")
        return QueryResult(rows=[{alias: n}], row_count=n)

    def _op_insert(self, op: Any) -> QueryResult:
        ids = self._insert(op.collection, op.documents)
        return QueryResult(row_count=len(ids), insert_id=ids[0], inserted_ids=ids)

    def _op_insert_many(self, op: Any) -> QueryResult:
        ids = self._insert(op.collection, op.documents)
        return QueryResult(row_count=len(ids), insert_id=ids[0] if ids else None, inserted_ids=ids)

    def _op_update(self, op: Any) -> QueryResult:
        count = 0
        for doc in self.collection(op.collection):
            if matches(doc, op.filter):
                _apply_update(doc, op.update)
                count += 1
        return QueryResult(row_count=count)

    def _op_delete(self, op: Any) -> QueryResult:
        coll = self.collection(op.collection)
        keep = [d for d in coll if not matches(d, op.filter)]
        removed = len(coll) - len(keep)
        coll[:] = keep
        return QueryResult(row_count=removed)

    def _op_aggregate(self, op: Any) -> QueryResult:
        docs = [copy.deepcopy(d) for d in self.collection(op.collection)]
        for stage in op.pipeline:
            (name, spec), = stage.items()
            if name == "$match":
                docs = [d for d in docs if matches(d, spec)]
            elif name == "$group":
                docs = _group(docs, spec)
            elif name == "$project":
                docs = [_project(d, spec) for d in docs]
            elif name == "$sort":
                docs = _sort(docs, list(spec.items()))
            elif name == "$skip":
                docs = docs[spec:]
            elif name == "$limit":
                docs = docs[:spec]
            else:
                raise ValueError(f"Unsupported pipeline stage: {name}")
        return QueryResult(rows=docs, row_count=len(docs))

    def _insert(self, name: str, documents: List[Dict[str, Any]]) -> List[Any]:
        coll = self.collection(name)
        ids = []
        for doc in documents:
            stored = copy.deepcopy(doc)
            if stored.get("_id") is None:
                stored["_id"] = uuid.uuid4().hex
            elif any(d["_id"] == stored["_id"] for d in coll):
                raise ValueError(f"Duplicate _id {stored['_id']!r} in collection '{name}'")
            coll.append(stored)
            ids.append(stored["_id"])
        return ids

    # ── Transactions ─────────────────────────────────────────────────

    async def begin(self) -> None:
        self._snapshot = copy.deepcopy(self._collections)

    async def commit(self) -> None:
        self._snapshot = None

    async def rollback(self) -> None:
        if self._snapshot is not None:
            self._collections = self._snapshot
        self._snapshot = None

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def dialect(self) -> str:
        return "document"


# ── Filter evaluation ────────────────────────────────────────────────

def _resolve(doc: Dict[str, Any], path: str) -> Any:
    current: Any = doc
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def matches(doc: Dict[str, Any], filt: Dict[str, Any]) -> bool:
    """True when ``doc`` satisfies every clause of ``filt``."""
    for key, cond in filt.items():
        if key == "$or":
            if not any(matches(doc, sub) for sub in cond):
                return False
        elif key == "$and":
            if not all(matches(doc, sub) for sub in cond):
                return False
        elif not _match_value(_resolve(doc, key), cond):
            return False
    return True


def _is_operator_dict(cond: Any) -> bool:
    return isinstance(cond, dict) and bool(cond) and all(k.startswith("$") for k in cond)


def _match_value(value: Any, cond: Any) -> bool:
    if not _is_operator_dict(cond):
        return _eq(value, cond)
    for op, arg in cond.items():
        if op == "$options":
            continue
        if op == "$eq" and not _eq(value, arg):
            return False
        if op == "$ne" and _eq(value, arg):
            return False
        if op in ("$gt", "$gte", "$lt", "$lte") and not _compare(value, op, arg):
            return False
        if op == "$in" and not any(_eq(value, a) for a in arg):
            return False
        if op == "$nin" and any(_eq(value, a) for a in arg):
            return False
        if op == "$exists" and (value is not _MISSING) != bool(arg):
            return False
        if op == "$regex":
            flags = re.IGNORECASE if "i" in cond.get("$options", "") else 0
            if not isinstance(value, str) or re.search(arg, value, flags) is None:
                return False
        if op == "$not" and _match_value(value, arg):
            return False
    return True


def _eq(value: Any, other: Any) -> bool:
    if value is _MISSING:
        return other is None
    return value == other


def _compare(value: Any, op: str, arg: Any) -> bool:
    if value is _MISSING or value is None or arg is None:
        return False
    try:
        if op == "$gt":
            return value > arg
        if op == "$gte":
            return value >= arg
        if op == "$lt":
            return value < arg
        return value <= arg
    except TypeError:
        return False


# ── Updates / projection / sorting / grouping ────────────────────────

def _apply_update(doc: Dict[str, Any], update: Dict[str, Any]) -> None:
    for key, value in update.get("$set", {}).items():
        doc[key] = copy.deepcopy(value)
    for key, amount in update.get("$inc", {}).items():
        doc[key] = (doc.get(key) or 0) + amount
    for key in update.get("$unset", {}):
        doc.pop(key, None)


def _project(doc: Dict[str, Any], spec: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    if spec.get("_id", 1) and "_id" in doc:
        out["_id"] = doc["_id"]
    for key, rule in spec.items():
        if key == "_id":
            continue
        if isinstance(rule, str) and rule.startswith("$"):
            value = _resolve(doc, rule[1:])
        elif rule:
            value = _resolve(doc, key)
        else:
            continue
        if value is not _MISSING:
            out[key] = copy.deepcopy(value)
    return out


def _sort(docs: List[Dict[str, Any]], keys: List[Any]) -> List[Dict[str, Any]]:
    result = list(docs)
    for field, direction in reversed(keys):
        present = [d for d in result if _resolve(d, field) not in (_MISSING, None)]
        absent = [d for d in result if _resolve(d, field) in (_MISSING, None)]
        present.sort(key=lambda d: _resolve(d, field), reverse=direction < 0)
        result = absent + present if direction > 0 else present + absent
    return result


def _group(docs: List[Dict[str, Any]], spec: Dict[str, Any]) -> List[Dict[str, Any]]:
    key_spec = spec.get("_id")
    groups: Dict[Any, List[Dict[str, Any]]] = {}
    keys: Dict[Any, Any] = {}
    for doc in docs:
        if key_spec is None:
            key = None
        else:
            key = {k: _resolve(doc, v[1:]) if isinstance(v, str) else v for k, v in key_spec.items()}
            key = {k: (None if v is _MISSING else v) for k, v in key.items()}
        marker = repr(key)
        groups.setdefault(marker, []).append(doc)
        keys[marker] = key

    out = []
    for marker, members in groups.items():
        row: Dict[str, Any] = {"_id": keys[marker]}
        for name, acc in spec.items():
            if name == "_id":
                continue
            (func, arg), = acc.items()
            if isinstance(arg, str) and arg.startswith("$"):
                values = [_resolve(d, arg[1:]) for d in members]
                values = [v for v in values if v not in (_MISSING, None)]
            else:
                values = [arg for _ in members]
            if func == "$sum":
                row[name] = sum(values)
            elif func == "$avg":
                row[name] = sum(values) / len(values) if values else None
            elif func == "$max":
                row[name] = max(values) if values else None
            elif func == "$min":
                row[name] = min(values) if values else None
            else:
                raise ValueError(f"Unsupported accumulator: {func}")
        out.append(row)
    return out
