"""
Gambit Model Base — declarative, async active-record models.

Usage:
    from gambit.models import Model, CharField, IntegerField, HasMany

    class User(Model):
        name = CharField(max_length=150)
        email = CharField(unique=True, validators=[EmailValidator()])
        age = IntegerField(null=True)
        posts = HasMany("Post")

        class Meta:
            table = "users"
            timestamps = True
            soft_deletes = True

    user = await User.create({"name": "Alice", "email": "alice@test.com"})
    user.age = 31
    await user.save()
    adults = await User.find_all(where={"age": [18, 19, 20]}, order_by="-age")
    await user.delete()                    # soft delete
    trashed = await User.only_trashed().find_all()
"""

from __future__ import annotations

import copy
import datetime
from typing import Any, Callable, ClassVar, Dict, Iterable, List, Mapping, Optional, Sequence, Type, TYPE_CHECKING

from ..faults import UnknownFieldFault
from ..query.base import BaseQueryBuilder
from ..query.dialects import Dialect, get_dialect
from .fields import Field
from .hooks import HookEvent
from .metaclass import ModelMeta
from .options import Options
from .registry import ModelRegistry, ModelState, TrashedVisibility
from .relations import Relation
from .scopes import ScopedQuery

if TYPE_CHECKING:
    from ..db.engine import Database
    from .components import RelationshipComponent, ValidationComponent
    from .lifecycle import RecordLifecycle

__all__ = ["Model"]


class Model(metaclass=ModelMeta):
    """
    Gambit Model base class.

    Attributes are the declared fields only; assigning anything else
    raises UnknownFieldFault. Columns a read returns beyond the declared
    fields (``pivot_*`` columns, joined columns) are kept apart as extras
    and readable as attributes.
    """

    # Class-level attributes set by metaclass
    _fields: ClassVar[Dict[str, Field]] = {}
    _meta: ClassVar[Options]
    _relations: ClassVar[Dict[str, Relation]] = {}
    _db: ClassVar[Optional[Database]] = None
    _state: ClassVar[ModelState]
    _validation: ClassVar[ValidationComponent]
    _relationships: ClassVar[RelationshipComponent]
    _lifecycle: ClassVar[RecordLifecycle]

    def __init__(self, **kwargs: Any):
        """Create a model instance (in-memory, not persisted)."""
        self._init_state()
        for key in kwargs:
            if key not in self._fields:
                raise UnknownFieldFault(type(self).__name__, key)
        for attr_name, field in self._fields.items():
            if attr_name in kwargs:
                setattr(self, attr_name, kwargs[attr_name])
            elif field.has_default():
                setattr(self, attr_name, field.get_default())
            else:
                setattr(self, attr_name, None)

    def _init_state(self) -> None:
        object.__setattr__(self, "_original", {})
        object.__setattr__(self, "_extras", {})
        object.__setattr__(self, "_loaded", {})

    def __setattr__(self, name: str, value: Any) -> None:
        if not name.startswith("_") and name not in self._fields:
            raise UnknownFieldFault(type(self).__name__, name)
        object.__setattr__(self, name, value)

    def __getattr__(self, name: str) -> Any:
        # Only reached when normal lookup fails
        if not name.startswith("_"):
            extras = self.__dict__.get("_extras", {})
            if name in extras:
                return extras[name]
        raise AttributeError(f"{type(self).__name__!s} has no attribute {name!r}")

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} id={self.__dict__.get('id')}>"

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, self.__class__):
            return False
        if self.id is None or other.id is None:
            return self is other
        return self.id == other.id

    def __hash__(self) -> int:
        return hash((self.__class__.__name__, self.__dict__.get("id")))

    # ── Class-level DB ───────────────────────────────────────────────

    @classmethod
    def _get_db(cls) -> Database:
        """Get database connection."""
        db = cls._db or ModelRegistry.get_database()
        if db is None:
            from ..db.engine import get_database
            db = get_database()
        return db

    @classmethod
    def use_database(cls, db: Optional[Database]) -> None:
        """Bind this model type (not its subclasses' own bindings) to ``db``."""
        cls._db = db

    @classmethod
    def builder(cls, table: Optional[str] = None) -> BaseQueryBuilder:
        """Unscoped builder for ``table`` (default: this model's table)."""
        return cls._lifecycle.builder(table)

    # ── Hooks ────────────────────────────────────────────────────────

    @classmethod
    def hook(cls, event: HookEvent | str, callback: Optional[Callable] = None, priority: int = 100) -> Any:
        """Register a lifecycle callback. Can be used as a decorator."""
        return cls._state.hooks.register(event, callback, priority)

    @classmethod
    def unhook(cls, event: HookEvent | str, callback: Callable) -> bool:
        return cls._state.hooks.unregister(event, callback)

    @classmethod
    def clear_hooks(cls, event: HookEvent | str | None = None) -> None:
        cls._state.hooks.clear(event)

    # ── Scopes ───────────────────────────────────────────────────────

    @classmethod
    def scope(cls, name: str, fn: Optional[Callable] = None) -> Any:
        """Register a local scope. Can be used as a decorator."""
        def _decorator(f: Callable) -> Callable:
            cls._state.add_scope(name, f)
            return f

        if fn is not None:
            return _decorator(fn)
        return _decorator

    @classmethod
    def add_global_scope(cls, name: str, fn: Callable) -> None:
        cls._state.add_global_scope(name, fn)

    @classmethod
    def remove_global_scope(cls, name: str) -> bool:
        return cls._state.remove_global_scope(name)

    @classmethod
    def clear_global_scopes(cls) -> None:
        cls._state.clear_global_scopes()

    @classmethod
    def query(cls) -> ScopedQuery:
        return ScopedQuery(cls)

    @classmethod
    def with_trashed(cls) -> Type[Model]:
        """Include soft-deleted rows in the next read only."""
        cls._state.set_visibility(TrashedVisibility.WITH)
        return cls

    @classmethod
    def only_trashed(cls) -> Type[Model]:
        """Return only soft-deleted rows from the next read."""
        cls._state.set_visibility(TrashedVisibility.ONLY)
        return cls

    # ── Reads ────────────────────────────────────────────────────────

    @classmethod
    async def find_all(
        cls,
        where: Optional[Mapping[str, Any]] = None,
        order_by: Any = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        include: Optional[Iterable[str]] = None,
    ) -> List[Model]:
        """
        Records matching ``where``.

        Usage:
            await User.find_all({"status": "active"}, order_by="-created_at", limit=10)
            await User.find_all(include=["posts"])
        """
        return await cls._lifecycle.find_all(where, order_by, limit, offset, include)

    @classmethod
    async def find_by_id(cls, pk: Any, include: Optional[Iterable[str]] = None) -> Optional[Model]:
        return await cls._lifecycle.find_by_id(pk, include)

    @classmethod
    async def find_one(cls, conditions: Optional[Mapping[str, Any]] = None, include: Optional[Iterable[str]] = None) -> Optional[Model]:
        return await cls._lifecycle.find_one(conditions, include)

    @classmethod
    async def first(cls, where: Optional[Mapping[str, Any]] = None, order_by: Any = None, include: Optional[Iterable[str]] = None) -> Optional[Model]:
        return await cls._lifecycle.first(where, order_by, include)

    @classmethod
    async def last(cls, where: Optional[Mapping[str, Any]] = None, order_by: Any = None, include: Optional[Iterable[str]] = None) -> Optional[Model]:
        return await cls._lifecycle.last(where, order_by, include)

    @classmethod
    async def count(cls, conditions: Optional[Mapping[str, Any]] = None) -> int:
        return await cls._lifecycle.count(conditions)

    @classmethod
    async def exists(cls, conditions: Optional[Mapping[str, Any]] = None) -> bool:
        return await cls._lifecycle.exists(conditions)

    @classmethod
    async def pluck(cls, column: str, where: Optional[Mapping[str, Any]] = None, order_by: Any = None, limit: Optional[int] = None) -> List[Any]:
        return await cls._lifecycle.pluck(column, where, order_by, limit)

    # ── Writes ───────────────────────────────────────────────────────

    @classmethod
    async def create(cls, attrs: Optional[Mapping[str, Any]] = None, *, skip_validation: bool = False, **data: Any) -> Model:
        """
        Create and persist a new record.

        Usage:
            user = await User.create({"name": "Alice"})
            user = await User.create(name="Alice")
        """
        return await cls._lifecycle.create({**(attrs or {}), **data}, skip_validation)

    async def save(self, skip_validation: bool = False) -> Model:
        """Insert (no id yet) or update the changed fields."""
        return await self._lifecycle.save(self, skip_validation)

    async def update(self, attrs: Optional[Mapping[str, Any]] = None, *, skip_validation: bool = False, **data: Any) -> Model:
        return await self._lifecycle.update(self, {**(attrs or {}), **data}, skip_validation)

    async def delete(self) -> bool:
        return await self._lifecycle.delete(self)

    async def force_delete(self) -> bool:
        return await self._lifecycle.force_delete(self)

    async def restore(self) -> bool:
        return await self._lifecycle.restore(self)

    async def validate(self) -> None:
        """Run validate hooks and rules; raises ValidationFault."""
        await self._lifecycle.validate(self)

    async def increment(self, column: str, amount: Any = 1) -> Model:
        return await self._lifecycle.increment(self, column, amount)

    async def decrement(self, column: str, amount: Any = 1) -> Model:
        return await self._lifecycle.increment(self, column, -amount)

    async def touch(self, column: Optional[str] = None) -> Model:
        return await self._lifecycle.touch(self, column)

    async def fresh(self) -> Model:
        """Reload this record's attributes from the store."""
        return await self._lifecycle.fresh(self)

    # ── Bulk ─────────────────────────────────────────────────────────

    @classmethod
    async def bulk_insert(cls, records: Sequence[Mapping[str, Any]]) -> List[Model]:
        return await cls._lifecycle.bulk_insert(records)

    @classmethod
    async def bulk_update(cls, conditions: Mapping[str, Any], updates: Mapping[str, Any]) -> int:
        return await cls._lifecycle.bulk_update(conditions, updates)

    @classmethod
    async def bulk_delete(cls, conditions: Mapping[str, Any], force: bool = False) -> int:
        return await cls._lifecycle.bulk_delete(conditions, force)

    @classmethod
    async def bulk_upsert(cls, records: Sequence[Mapping[str, Any]], unique_keys: Sequence[str] = ("id",)) -> List[Model]:
        """
        Insert-or-update each record by ``unique_keys``.

        Issues a read and a write per record, one record at a time. Not
        atomic and not safe against concurrent writers of the same keys.
        """
        return await cls._lifecycle.bulk_upsert(records, unique_keys)

    # ── Dirty tracking ───────────────────────────────────────────────

    def get_attributes(self) -> Dict[str, Any]:
        return {name: self.__dict__.get(name) for name in self._fields}

    def _snapshot(self, *names: str) -> None:
        """Record current values as persisted (all fields, or ``names``)."""
        for name in names or self._fields:
            self._original[name] = copy.deepcopy(self.__dict__.get(name))

    def is_dirty(self, field: Optional[str] = None) -> bool:
        if field is not None:
            if field not in self._fields:
                raise UnknownFieldFault(type(self).__name__, field)
            return self.__dict__.get(field) != self._original.get(field)
        return bool(self.get_dirty())

    def is_clean(self, field: Optional[str] = None) -> bool:
        return not self.is_dirty(field)

    def get_dirty(self) -> Dict[str, Any]:
        """Fields whose value differs from the last snapshot."""
        return {
            name: value
            for name, value in self.get_attributes().items()
            if value != self._original.get(name)
        }

    # ── Serialization ────────────────────────────────────────────────

    def to_dict(self, *, exclude: Optional[List[str]] = None) -> Dict[str, Any]:
        """Serialize declared fields and loaded relations to a dict."""
        exclude = set(exclude or [])
        result: Dict[str, Any] = {}
        for attr_name in self._fields:
            if attr_name in exclude:
                continue
            value = self.__dict__.get(attr_name)
            if isinstance(value, (datetime.datetime, datetime.date)):
                value = value.isoformat()
            result[attr_name] = value
        for name, value in self._loaded.items():
            if name in exclude:
                continue
            if isinstance(value, list):
                result[name] = [v.to_dict() for v in value]
            elif isinstance(value, Model):
                result[name] = value.to_dict()
            else:
                result[name] = value
        return result

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Model:
        """Create model instance from database row dict."""
        instance = cls.__new__(cls)
        instance._init_state()
        instance._load_row(row)
        return instance

    def _load_row(self, row: Mapping[str, Any]) -> None:
        seen = set()
        for attr_name, field in self._fields.items():
            col_name = field.column_name
            if col_name in row:
                raw = row[col_name]
            else:
                raw = row.get(attr_name)
            seen.update((col_name, attr_name))
            object.__setattr__(self, attr_name, field.to_python(raw))
        object.__setattr__(self, "_extras", {k: v for k, v in row.items() if k not in seen})
        self._snapshot()

    # ── SQL Generation ───────────────────────────────────────────────

    @classmethod
    def create_table_sql(cls, dialect: str | Dialect = "sqlite") -> str:
        """Generate CREATE TABLE SQL."""
        d = get_dialect(dialect)
        cols = [field.sql_column_def(d) for field in cls._fields.values()]
        body = ",\n  ".join(cols)
        return f"CREATE TABLE IF NOT EXISTS {d.quote(cls._meta.table)} (\n  {body}\n)"
