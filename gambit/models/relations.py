"""
Gambit Relations — declarative relationship descriptors.

Declare relations as class attributes; on an instance the attribute is
a resolver bound to that record:

    class User(Model):
        name = CharField()
        posts = HasMany("Post")               # posts.user_id -> users.id
        profile = HasOne("Profile")

    class Post(Model):
        title = CharField()
        user_id = IntegerField(null=True)
        author = BelongsTo(User, foreign_key="user_id")
        tags = BelongsToMany("Tag", pivot_table="post_tag", with_pivot=["order"])

    posts = await user.posts.load()
    await post.tags.sync([2, 3])
    tags = await post.tags.load()
    tags[0].pivot_order

Foreign keys default to ``<singular table>_id``: the owner's table for
has-one/has-many, the related table for belongs-to. Related models may
be given as classes or as registered class names.

Reads go through the related type's read path, so its global scopes and
soft-delete filter apply.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Type, TYPE_CHECKING

from ..faults import MissingIdentityFault
from ..query.base import BaseQueryBuilder
from .registry import ModelRegistry

if TYPE_CHECKING:
    from .base import Model

logger = logging.getLogger("gambit.models.relations")

__all__ = [
    "PIVOT_PREFIX",
    "Relation",
    "HasOne",
    "HasMany",
    "BelongsTo",
    "BelongsToMany",
    "BoundRelation",
    "PivotRelation",
    "singular",
]

PIVOT_PREFIX = "pivot_"


def singular(table: str) -> str:
    """``users`` -> ``user``, ``categories`` -> ``category``."""
    if table.endswith("ies") and len(table) > 3:
        return table[:-3] + "y"
    if table.endswith("s") and not table.endswith("ss"):
        return table[:-1]
    return table


def _as_list(ids: Any) -> List[Any]:
    if ids is None:
        return []
    if isinstance(ids, (list, tuple, set, frozenset)):
        return list(ids)
    return [ids]


def _key(model_cls: Type[Model], attr: str) -> str:
    """Column name for ``attr`` on ``model_cls`` (attr itself if undeclared)."""
    field = model_cls._fields.get(attr)
    return field.column_name if field is not None else attr


# ── Descriptors ──────────────────────────────────────────────────────


class Relation:
    """
    Base relationship descriptor.

    Subclasses define ``kind``, key resolution, single-record loading
    and batched eager loading.
    """

    kind: str = ""
    many: bool = False
    pivot_table: Optional[str] = None

    def __init__(self, related: Any, foreign_key: Optional[str] = None):
        self._related = related
        self._foreign_key = foreign_key
        self.name: str = ""
        self.owner: Optional[Type[Model]] = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name
        self.owner = owner

    def __get__(self, instance: Any, owner: type) -> Any:
        if instance is None:
            return self
        return self.bind(instance)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name} -> {self._related_name}>"

    @property
    def _related_name(self) -> str:
        return self._related if isinstance(self._related, str) else self._related.__name__

    @property
    def related(self) -> Type[Model]:
        return ModelRegistry.resolve(self._related)

    def bind(self, record: Model) -> BoundRelation:
        return BoundRelation(self, record)

    def create_pivot_sql(self, dialect: Any = "sqlite") -> Optional[str]:
        return None

    # Overridden per kind

    def query_for(self, record: Model) -> Optional[BaseQueryBuilder]:
        raise NotImplementedError

    async def load_for(self, record: Model) -> Any:
        raise NotImplementedError

    async def eager_load(self, records: Sequence[Model]) -> None:
        raise NotImplementedError

    def _empty(self) -> Any:
        return [] if self.many else None


class _HasRelation(Relation):
    """Shared logic for has-one and has-many: the key lives on the related table."""

    def __init__(self, related: Any, foreign_key: Optional[str] = None, local_key: str = "id"):
        super().__init__(related, foreign_key)
        self.local_key = local_key

    def foreign_key_for(self, owner_cls: Type[Model]) -> str:
        return self._foreign_key or f"{singular(owner_cls._meta.table)}_id"

    def query_for(self, record: Model) -> Optional[BaseQueryBuilder]:
        value = getattr(record, self.local_key, None)
        if value is None:
            return None
        related = self.related
        fk = _key(related, self.foreign_key_for(type(record)))
        return related._lifecycle.read_builder().where(fk, "=", value)

    async def load_for(self, record: Model) -> Any:
        qb = self.query_for(record)
        if qb is None:
            return self._empty()
        if not self.many:
            row = await qb.first()
            return self.related._lifecycle.hydrate(row) if row is not None else None
        rows = await qb.get()
        return [self.related._lifecycle.hydrate(r) for r in rows]

    async def eager_load(self, records: Sequence[Model]) -> None:
        if not records:
            return
        related = self.related
        fk_attr = self.foreign_key_for(type(records[0]))
        values = list(dict.fromkeys(
            getattr(r, self.local_key, None) for r in records
            if getattr(r, self.local_key, None) is not None
        ))
        grouped: Dict[Any, List[Model]] = {}
        if values:
            qb = related._lifecycle.read_builder().where_in(_key(related, fk_attr), values)
            for row in await qb.get():
                child = related._lifecycle.hydrate(row)
                grouped.setdefault(getattr(child, fk_attr, None), []).append(child)
        logger.debug(f"Eager loaded {self.name} for {len(records)} record(s) in one query")
        for record in records:
            children = grouped.get(getattr(record, self.local_key, None), [])
            record._loaded[self.name] = children if self.many else (children[0] if children else None)


class HasOne(_HasRelation):
    """One related record whose foreign key points at the owner."""

    kind = "has_one"


class HasMany(_HasRelation):
    """Related records whose foreign key points at the owner."""

    kind = "has_many"
    many = True


class BelongsTo(Relation):
    """The owner holds the foreign key to the related record."""

    kind = "belongs_to"

    def __init__(self, related: Any, foreign_key: Optional[str] = None, owner_key: str = "id"):
        super().__init__(related, foreign_key)
        self.owner_key = owner_key

    @property
    def foreign_key(self) -> str:
        return self._foreign_key or f"{singular(self.related._meta.table)}_id"

    def query_for(self, record: Model) -> Optional[BaseQueryBuilder]:
        value = getattr(record, self.foreign_key, None)
        if value is None:
            return None
        related = self.related
        return related._lifecycle.read_builder().where(_key(related, self.owner_key), "=", value)

    async def load_for(self, record: Model) -> Any:
        qb = self.query_for(record)
        if qb is None:
            return None
        row = await qb.first()
        return self.related._lifecycle.hydrate(row) if row is not None else None

    async def eager_load(self, records: Sequence[Model]) -> None:
        related = self.related
        fk = self.foreign_key
        values = list(dict.fromkeys(
            getattr(r, fk, None) for r in records if getattr(r, fk, None) is not None
        ))
        parents: Dict[Any, Model] = {}
        if values:
            qb = related._lifecycle.read_builder().where_in(_key(related, self.owner_key), values)
            for row in await qb.get():
                parent = related._lifecycle.hydrate(row)
                parents[getattr(parent, self.owner_key, None)] = parent
        for record in records:
            record._loaded[self.name] = parents.get(getattr(record, fk, None))


class BelongsToMany(Relation):
    """
    Many-to-many through a pivot (junction) table.

    Args:
        related: Related model class or name
        pivot_table: Junction table name
        foreign_pivot_key: Pivot column holding the owner's key
            (default ``<singular owner table>_id``)
        related_pivot_key: Pivot column holding the related key
            (default ``<singular related table>_id``)
        parent_key: Owner attribute stored in the pivot (default ``id``)
        related_key: Related attribute stored in the pivot (default ``id``)
        with_pivot: Extra pivot columns to surface on loaded records as
            ``pivot_<column>``
    """

    kind = "belongs_to_many"
    many = True

    def __init__(
        self,
        related: Any,
        pivot_table: str,
        foreign_pivot_key: Optional[str] = None,
        related_pivot_key: Optional[str] = None,
        parent_key: str = "id",
        related_key: str = "id",
        with_pivot: Iterable[str] = (),
    ):
        super().__init__(related, foreign_pivot_key)
        self.pivot_table = pivot_table
        self._related_pivot_key = related_pivot_key
        self.parent_key = parent_key
        self.related_key = related_key
        self.with_pivot = tuple(with_pivot)

    def foreign_pivot_key_for(self, owner_cls: Type[Model]) -> str:
        return self._foreign_key or f"{singular(owner_cls._meta.table)}_id"

    @property
    def related_pivot_key(self) -> str:
        return self._related_pivot_key or f"{singular(self.related._meta.table)}_id"

    def bind(self, record: Model) -> PivotRelation:
        return PivotRelation(self, record)

    def create_pivot_sql(self, dialect: Any = "sqlite") -> Optional[str]:
        from ..query.dialects import get_dialect

        d = get_dialect(dialect)
        if self.owner is None:
            return None
        fpk = self.foreign_pivot_key_for(self.owner)
        rpk = self.related_pivot_key
        cols = [
            f"{d.quote(fpk)} {d.column_type('integer')} NOT NULL",
            f"{d.quote(rpk)} {d.column_type('integer')} NOT NULL",
        ]
        cols.extend(f"{d.quote(c)} {d.column_type('text')}" for c in self.with_pivot)
        body = ",\n  ".join(cols)
        return f"CREATE TABLE IF NOT EXISTS {d.quote(self.pivot_table)} (\n  {body}\n)"

    def query_for(self, record: Model) -> Optional[BaseQueryBuilder]:
        """Related rows joined to the pivot (relational stores only)."""
        value = getattr(record, self.parent_key, None)
        if value is None:
            return None
        related = self.related
        # decide on joins before read_builder consumes trashed visibility
        if not related._lifecycle.builder().supports_joins:
            return None
        table = related._meta.table
        qb = related._lifecycle.read_builder(qualify=True)
        pivot = self.pivot_table
        qb.inner_join(pivot, {
            "left": f"{table}.{_key(related, self.related_key)}",
            "right": f"{pivot}.{self.related_pivot_key}",
        })
        qb.select(
            f"{table}.*",
            *(f"{pivot}.{c} AS {PIVOT_PREFIX}{c}" for c in self.with_pivot),
        )
        qb.where(f"{pivot}.{self.foreign_pivot_key_for(type(record))}", "=", value)
        return qb

    async def load_for(self, record: Model) -> List[Model]:
        value = getattr(record, self.parent_key, None)
        if value is None:
            return []
        related = self.related
        qb = self.query_for(record)
        if qb is not None:
            records: List[Model] = []
            seen = set()
            for row in await qb.get():
                child = related._lifecycle.hydrate(row)
                key = getattr(child, self.related_key, None)
                if key in seen:
                    continue
                seen.add(key)
                records.append(child)
            return records
        return await self._load_two_step(record, value)

    async def _load_two_step(self, record: Model, value: Any) -> List[Model]:
        """Document stores: read pivot rows, then the related rows by key."""
        related = self.related
        qb = related._lifecycle.read_builder()
        pivot_rows = await (
            self.pivot_builder(record)
            .where(self.foreign_pivot_key_for(type(record)), "=", value)
            .get()
        )
        rpk = self.related_pivot_key
        by_key = {row.get(rpk): row for row in pivot_rows}
        if not by_key:
            return []
        qb.where_in(_key(related, self.related_key), list(by_key))
        records = []
        for row in await qb.get():
            child = related._lifecycle.hydrate(row)
            pivot_row = by_key.get(getattr(child, self.related_key, None), {})
            for column in self.with_pivot:
                child._extras[f"{PIVOT_PREFIX}{column}"] = pivot_row.get(column)
            records.append(child)
        return records

    async def eager_load(self, records: Sequence[Model]) -> None:
        # one query per owner; pivot extras differ per owner
        for record in records:
            record._loaded[self.name] = await self.load_for(record)

    def pivot_builder(self, record: Model) -> BaseQueryBuilder:
        return type(record)._lifecycle.builder(self.pivot_table)


# ── Bound resolvers ──────────────────────────────────────────────────


class BoundRelation:
    """A relation bound to one owner record."""

    __slots__ = ("relation", "record")

    def __init__(self, relation: Relation, record: Model):
        self.relation = relation
        self.record = record

    def __repr__(self) -> str:
        return f"<{self.relation.__class__.__name__} {type(self.record).__name__}.{self.relation.name}>"

    @property
    def is_loaded(self) -> bool:
        return self.relation.name in self.record._loaded

    @property
    def cached(self) -> Any:
        """Value from the last load or eager load, if any."""
        return self.record._loaded.get(self.relation.name, self.relation._empty())

    async def load(self, refresh: bool = False) -> Any:
        """Related record(s); eager-loaded values are reused unless ``refresh``."""
        if self.is_loaded and not refresh:
            return self.record._loaded[self.relation.name]
        value = await self.relation.load_for(self.record)
        self.record._loaded[self.relation.name] = value
        return value

    def query(self) -> Optional[BaseQueryBuilder]:
        """Unexecuted builder for the related rows (``None`` when the owner key is unset)."""
        return self.relation.query_for(self.record)


class PivotRelation(BoundRelation):
    """Many-to-many resolver with pivot-row management."""

    __slots__ = ()

    relation: BelongsToMany

    def _owner_key(self, operation: str) -> Any:
        value = getattr(self.record, self.relation.parent_key, None)
        if value is None:
            raise MissingIdentityFault(type(self.record).__name__, operation)
        return value

    def _pivot(self) -> BaseQueryBuilder:
        return self.relation.pivot_builder(self.record)

    @property
    def _fpk(self) -> str:
        return self.relation.foreign_pivot_key_for(type(self.record))

    async def attach(self, ids: Any, pivot_data: Optional[Dict[str, Any]] = None) -> int:
        """Insert one pivot row per id; returns the number inserted."""
        owner = self._owner_key("attach")
        ids = _as_list(ids)
        if not ids:
            return 0
        rows = [
            {self._fpk: owner, self.relation.related_pivot_key: rid, **(pivot_data or {})}
            for rid in ids
        ]
        await self._pivot().insert(rows).execute()
        self.record._loaded.pop(self.relation.name, None)
        return len(rows)

    async def detach(self, ids: Any = None) -> int:
        """Remove pivot rows for ``ids``, or all of the owner's when ``None``."""
        owner = self._owner_key("detach")
        qb = self._pivot().delete().where(self._fpk, "=", owner)
        if ids is not None:
            qb.where_in(self.relation.related_pivot_key, _as_list(ids))
        result = await qb.execute()
        self.record._loaded.pop(self.relation.name, None)
        return result.row_count or 0

    async def sync(self, ids: Any, detaching: bool = True) -> None:
        """
        Make the attached set exactly ``ids``.

        With ``detaching=False`` existing rows are kept and ``ids`` are
        inserted on top (no duplicate check).
        """
        self._owner_key("sync")
        if detaching:
            await self.detach()
        ids = _as_list(ids)
        if ids:
            await self.attach(ids)

    async def toggle(self, related_id: Any) -> bool:
        """Detach if attached, attach otherwise; returns True when now attached."""
        if await self.has(related_id):
            await self.detach(related_id)
            return False
        await self.attach(related_id)
        return True

    async def has(self, related_id: Any) -> bool:
        owner = self._owner_key("query pivot of")
        row = await (
            self._pivot()
            .where(self._fpk, "=", owner)
            .where(self.relation.related_pivot_key, "=", related_id)
            .first()
        )
        return row is not None

    async def count(self) -> int:
        owner = self._owner_key("count pivot of")
        value = await self._pivot().where(self._fpk, "=", owner).count().scalar()
        return int(value or 0)
