"""
Gambit Record Lifecycle — persistence for one model type.

Sequences validation, hooks, timestamps and soft deletes around every
statement a model issues. Each model type owns one ``RecordLifecycle``
(``User._lifecycle``); the ``Model`` methods delegate here.

Hook order per operation:

    save (new):       before_save -> validate -> before_create -> INSERT
                      -> after_create -> after_save
    save (persisted): before_save -> validate -> before_update -> UPDATE
                      -> after_update -> after_save
    create:           before_create -> rules -> INSERT -> after_create
    update:           before_update -> rules (merged view) -> UPDATE
                      -> after_update
    delete:           before_delete -> UPDATE deleted_at | DELETE
                      -> after_delete (only if a row was affected)

A hook or validator that raises aborts the operation before its
statement runs. Nothing here retries.
"""

from __future__ import annotations

import datetime
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Type, Union, TYPE_CHECKING

from ..faults import (
    MissingIdentityFault,
    RecordNotFoundFault,
    SoftDeleteNotEnabledFault,
    UnknownFieldFault,
)
from ..query.base import BaseQueryBuilder
from .fields import AutoField
from .hooks import HookEvent
from .registry import ModelState, TrashedVisibility

if TYPE_CHECKING:
    from ..db.engine import Database
    from .base import Model

logger = logging.getLogger("gambit.models.lifecycle")

__all__ = ["RecordLifecycle", "utcnow"]

OrderSpec = Union[str, Tuple[str, str], Sequence[Union[str, Tuple[str, str]]], None]


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class RecordLifecycle:
    """
    Persistence component of one model type.

    Args:
        model_cls: The model class it persists
        state: That class's hooks, scopes and trashed visibility
    """

    def __init__(self, model_cls: Type[Model], state: ModelState):
        self.model_cls = model_cls
        self.state = state
        self.meta = model_cls._meta
        self.clock: Callable[[], datetime.datetime] = utcnow

    def __repr__(self) -> str:
        return f"<RecordLifecycle {self.model_cls.__name__}>"

    @property
    def name(self) -> str:
        return self.model_cls.__name__

    # ── Builders ─────────────────────────────────────────────────────

    def db(self) -> "Database":
        return self.model_cls._get_db()

    def builder(self, table: Optional[str] = None) -> BaseQueryBuilder:
        """Unscoped builder for ``table`` (default: this model's table)."""
        return self.db().builder(table or self.meta.table)

    def read_builder(
        self,
        conditions: Optional[Mapping[str, Any]] = None,
        *,
        qualify: bool = False,
        without_scopes: Iterable[str] = (),
    ) -> BaseQueryBuilder:
        """
        Builder for a read: global scopes, then ``conditions``, then the
        trashed-visibility filter. Consumes a pending ``with_trashed`` /
        ``only_trashed``.
        """
        qb = self.state.apply_global_scopes(self.builder(), tuple(without_scopes))
        self.apply_conditions(qb, conditions)
        self.apply_trashed(qb, qualify=qualify)
        return qb

    def apply_trashed(self, qb: BaseQueryBuilder, *, qualify: bool = False) -> BaseQueryBuilder:
        visibility = self.state.consume_visibility()
        if not self.meta.soft_deletes:
            return qb
        column = self.column(self.meta.deleted_at)
        if qualify:
            column = f"{self.meta.table}.{column}"
        if visibility is TrashedVisibility.DEFAULT:
            qb.where_null(column)
        elif visibility is TrashedVisibility.ONLY:
            qb.where_not_null(column)
        return qb

    def apply_conditions(self, qb: BaseQueryBuilder, conditions: Optional[Mapping[str, Any]]) -> BaseQueryBuilder:
        """
        Equality conditions: ``None`` matches NULL, a list/tuple/set
        matches any of its values.
        """
        for attr, value in (conditions or {}).items():
            column = self.column(attr)
            if value is None:
                qb.where_null(column)
            elif isinstance(value, (list, tuple, set, frozenset)):
                qb.where_in(column, [self.to_db(attr, v) for v in value])
            else:
                qb.where(column, "=", self.to_db(attr, value))
        return qb

    @staticmethod
    def apply_order(qb: BaseQueryBuilder, order_by: OrderSpec) -> BaseQueryBuilder:
        """Accepts ``"name"``, ``"-name"``, ``"name DESC"``, ``("name", "DESC")`` or a list of these."""
        if not order_by:
            return qb
        items = [order_by] if isinstance(order_by, (str, tuple)) else list(order_by)
        for item in items:
            if isinstance(item, tuple):
                qb.order_by(item[0], item[1] if len(item) > 1 else "ASC")
                continue
            parts = item.split()
            qb.order_by(parts[0], parts[1] if len(parts) > 1 else "ASC")
        return qb

    # ── Field mapping ────────────────────────────────────────────────

    def column(self, attr: str) -> str:
        field = self.model_cls._fields.get(attr)
        return field.column_name if field is not None else attr

    def to_db(self, attr: str, value: Any) -> Any:
        field = self.model_cls._fields.get(attr)
        return field.to_db(value) if field is not None else value

    def to_row(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        """Attribute values -> column/stored values."""
        return {self.column(k): self.to_db(k, v) for k, v in values.items()}

    def check_fields(self, attrs: Mapping[str, Any]) -> None:
        fields = self.model_cls._fields
        for key in attrs:
            if key not in fields:
                raise UnknownFieldFault(self.name, key)

    def hydrate(self, row: Mapping[str, Any]) -> Model:
        return self.model_cls.from_row(row)

    def _insert_values(self, record: Model) -> Dict[str, Any]:
        """Non-null attributes; every non-key column as NULL if none are set."""
        values = {
            name: getattr(record, name)
            for name in self.model_cls._fields
            if getattr(record, name, None) is not None
        }
        if not values:
            values = {
                name: None for name, field in self.model_cls._fields.items()
                if not isinstance(field, AutoField)
            }
        return values

    def _assign_identity(self, record: Model, result: Any) -> None:
        if result.insert_id is not None:
            pk = self.model_cls._fields["id"]
            record.id = pk.to_python(result.insert_id)

    def _require_id(self, record: Model, operation: str) -> Any:
        if record.id is None:
            raise MissingIdentityFault(self.name, operation)
        return record.id

    def _stamp_create(self, values: Dict[str, Any], now: datetime.datetime) -> None:
        """Fill created/updated timestamps the caller left empty."""
        if not self.meta.timestamps:
            return
        for attr in (self.meta.created_at, self.meta.updated_at):
            if not values.get(attr):
                values[attr] = now

    # ── Validation ───────────────────────────────────────────────────

    async def validate(self, record: Model) -> None:
        await self.model_cls._validation.validate(record)

    # ── Single-record writes ─────────────────────────────────────────

    async def save(self, record: Model, skip_validation: bool = False) -> Model:
        hooks = self.state.hooks
        is_new = record.id is None

        await hooks.execute(HookEvent.BEFORE_SAVE, record)
        if not skip_validation:
            await self.validate(record)
        await hooks.execute(HookEvent.BEFORE_CREATE if is_new else HookEvent.BEFORE_UPDATE, record)

        now = self.clock()
        if is_new:
            stamps: Dict[str, Any] = {
                attr: getattr(record, attr, None)
                for attr in (self.meta.created_at, self.meta.updated_at)
            } if self.meta.timestamps else {}
            self._stamp_create(stamps, now)
            for attr, value in stamps.items():
                setattr(record, attr, value)

            result = await self.builder().insert(self.to_row(self._insert_values(record))).execute()
            self._assign_identity(record, result)
            logger.debug(f"Inserted {self.name} id={record.id}")
            await hooks.execute(HookEvent.AFTER_CREATE, record)
        else:
            if self.meta.timestamps:
                setattr(record, self.meta.updated_at, now)
            changes = record.get_dirty()
            changes.pop("id", None)
            if changes:
                await (
                    self.builder()
                    .update(self.to_row(changes))
                    .where("id", "=", record.id)
                    .execute()
                )
                logger.debug(f"Updated {self.name} id={record.id}: {sorted(changes)}")
            await hooks.execute(HookEvent.AFTER_UPDATE, record)

        await hooks.execute(HookEvent.AFTER_SAVE, record)
        record._snapshot()
        return record

    async def create(self, attrs: Mapping[str, Any], skip_validation: bool = False) -> Model:
        hooks = self.state.hooks
        values = dict(attrs)
        self.check_fields(values)
        self._stamp_create(values, self.clock())

        record = self.model_cls(**values)
        await hooks.execute(HookEvent.BEFORE_CREATE, record)
        if not skip_validation:
            await self.model_cls._validation.check(record)

        result = await self.builder().insert(self.to_row(self._insert_values(record))).execute()
        self._assign_identity(record, result)
        logger.debug(f"Created {self.name} id={record.id}")
        await hooks.execute(HookEvent.AFTER_CREATE, record)
        record._snapshot()
        return record

    async def update(self, record: Model, attrs: Mapping[str, Any], skip_validation: bool = False) -> Model:
        self._require_id(record, "update")
        values = dict(attrs)
        self.check_fields(values)
        hooks = self.state.hooks

        await hooks.execute(HookEvent.BEFORE_UPDATE, record)
        if not skip_validation:
            merged = {**record.get_attributes(), **values}
            await self.model_cls._validation.check(record, merged)

        if self.meta.timestamps and not values.get(self.meta.updated_at):
            values[self.meta.updated_at] = self.clock()

        if values:
            await self.builder().update(self.to_row(values)).where("id", "=", record.id).execute()
        for attr, value in values.items():
            setattr(record, attr, value)
        logger.debug(f"Updated {self.name} id={record.id}: {sorted(values)}")

        await hooks.execute(HookEvent.AFTER_UPDATE, record)
        record._snapshot()
        return record

    async def delete(self, record: Model) -> bool:
        """Soft delete when enabled, hard delete otherwise."""
        self._require_id(record, "delete")
        if not self.meta.soft_deletes:
            return await self._hard_delete(record)

        hooks = self.state.hooks
        await hooks.execute(HookEvent.BEFORE_DELETE, record)
        now = self.clock()
        attr = self.meta.deleted_at
        result = await self.builder().update(self.to_row({attr: now})).where("id", "=", record.id).execute()
        if not result.row_count:
            return False
        setattr(record, attr, now)
        record._snapshot()
        logger.debug(f"Soft-deleted {self.name} id={record.id}")
        await hooks.execute(HookEvent.AFTER_DELETE, record)
        return True

    async def force_delete(self, record: Model) -> bool:
        """Hard delete regardless of the soft-delete policy."""
        self._require_id(record, "force delete")
        return await self._hard_delete(record)

    async def _hard_delete(self, record: Model) -> bool:
        hooks = self.state.hooks
        await hooks.execute(HookEvent.BEFORE_DELETE, record)
        result = await self.builder().delete().where("id", "=", record.id).execute()
        if not result.row_count:
            return False
        logger.debug(f"Deleted {self.name} id={record.id}")
        record.id = None
        record._snapshot()
        await hooks.execute(HookEvent.AFTER_DELETE, record)
        return True

    async def restore(self, record: Model) -> bool:
        """Clear the deleted-at marker; False (and no statement) if not trashed."""
        if not self.meta.soft_deletes:
            raise SoftDeleteNotEnabledFault(self.name)
        self._require_id(record, "restore")
        attr = self.meta.deleted_at
        if getattr(record, attr, None) is None:
            return False
        result = await self.builder().update({self.column(attr): None}).where("id", "=", record.id).execute()
        if not result.row_count:
            return False
        setattr(record, attr, None)
        record._snapshot()
        return True

    async def increment(self, record: Model, column: str, amount: Any = 1) -> Model:
        self._require_id(record, "increment")
        self.check_fields({column: None})
        await self.builder().increment(self.column(column), amount).where("id", "=", record.id).execute()
        setattr(record, column, (getattr(record, column, None) or 0) + amount)
        record._snapshot(column)
        return record

    async def touch(self, record: Model, column: Optional[str] = None) -> Model:
        """Set ``column`` (default: the updated-at field) to now."""
        self._require_id(record, "touch")
        attr = column or self.meta.updated_at
        self.check_fields({attr: None})
        now = self.clock()
        await self.builder().update(self.to_row({attr: now})).where("id", "=", record.id).execute()
        setattr(record, attr, now)
        record._snapshot(attr)
        return record

    async def fresh(self, record: Model) -> Model:
        """
        Reload every attribute from the stored row.

        Reads the row by identity alone: global scopes and the
        soft-delete filter do not apply.
        """
        self._require_id(record, "reload")
        row = await self.builder().where("id", "=", record.id).first()
        if row is None:
            raise RecordNotFoundFault(self.name, record.id)
        record._load_row(row)
        return record

    # ── Reads ────────────────────────────────────────────────────────

    async def find_all(
        self,
        where: Optional[Mapping[str, Any]] = None,
        order_by: OrderSpec = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        include: Optional[Iterable[str]] = None,
    ) -> List[Model]:
        qb = self.read_builder(where)
        self.apply_order(qb, order_by if order_by is not None else self.meta.ordering)
        if limit is not None:
            qb.limit(limit)
        if offset is not None:
            qb.offset(offset)
        return await self.fetch(qb, include)

    async def fetch(self, qb: BaseQueryBuilder, include: Optional[Iterable[str]] = None) -> List[Model]:
        """Execute a read builder, hydrate, then eager load ``include``."""
        records = [self.hydrate(row) for row in await qb.get()]
        if include:
            await self.model_cls._relationships.eager_load(records, include)
        return records

    async def find_by_id(self, pk: Any, include: Optional[Iterable[str]] = None) -> Optional[Model]:
        return await self.find_one({"id": pk}, include)

    async def find_one(self, conditions: Optional[Mapping[str, Any]] = None, include: Optional[Iterable[str]] = None) -> Optional[Model]:
        qb = self.read_builder(conditions).limit(1)
        records = await self.fetch(qb, include)
        return records[0] if records else None

    async def first(self, where: Optional[Mapping[str, Any]] = None, order_by: OrderSpec = None, include: Optional[Iterable[str]] = None) -> Optional[Model]:
        records = await self.find_all(where, order_by or "id", 1, None, include)
        return records[0] if records else None

    async def last(self, where: Optional[Mapping[str, Any]] = None, order_by: OrderSpec = None, include: Optional[Iterable[str]] = None) -> Optional[Model]:
        records = await self.find_all(where, order_by or "-id", 1, None, include)
        return records[0] if records else None

    async def count(self, conditions: Optional[Mapping[str, Any]] = None) -> int:
        value = await self.read_builder(conditions).count().scalar()
        return int(value or 0)

    async def exists(self, conditions: Optional[Mapping[str, Any]] = None) -> bool:
        return await self.count(conditions) > 0

    async def pluck(
        self,
        column: str,
        where: Optional[Mapping[str, Any]] = None,
        order_by: OrderSpec = None,
        limit: Optional[int] = None,
    ) -> List[Any]:
        qb = self.read_builder(where)
        self.apply_order(qb, order_by)
        if limit is not None:
            qb.limit(limit)
        return await self.pluck_from(qb, column)

    async def pluck_from(self, qb: BaseQueryBuilder, column: str) -> List[Any]:
        col = self.column(column)
        rows = await qb.select(col).get()
        field = self.model_cls._fields.get(column)
        values = [row.get(col) for row in rows]
        if field is not None:
            values = [field.to_python(v) for v in values]
        return values

    # ── Bulk ─────────────────────────────────────────────────────────
    # No hooks, no validation; timestamps and soft deletes still apply.

    async def bulk_insert(self, records: Sequence[Mapping[str, Any]]) -> List[Model]:
        """One multi-row INSERT; returns the new records with ids assigned."""
        if not records:
            return []
        now = self.clock()
        instances: List[Model] = []
        for attrs in records:
            values = dict(attrs)
            self.check_fields(values)
            self._stamp_create(values, now)
            instances.append(self.model_cls(**values))

        rows = [self.to_row(self._insert_values(record)) for record in instances]
        result = await self.builder().insert(rows).execute()
        ids = list(result.inserted_ids or [])
        if not ids and isinstance(result.insert_id, int):
            ids = [result.insert_id + i for i in range(len(rows))]

        pk = self.model_cls._fields["id"]
        for i, record in enumerate(instances):
            if i < len(ids) and record.id is None:
                record.id = pk.to_python(ids[i])
            record._snapshot()
        logger.debug(f"Bulk inserted {len(instances)} {self.name} record(s)")
        return instances

    async def bulk_update(self, conditions: Mapping[str, Any], updates: Mapping[str, Any]) -> int:
        """One UPDATE over every matching row; returns the affected count."""
        values = dict(updates)
        self.check_fields(values)
        if self.meta.timestamps and not values.get(self.meta.updated_at):
            values[self.meta.updated_at] = self.clock()
        qb = self.read_builder(conditions).update(self.to_row(values))
        result = await qb.execute()
        return result.row_count or 0

    async def bulk_delete(self, conditions: Mapping[str, Any], force: bool = False) -> int:
        """
        Delete every matching row; soft-deleting types mark rows instead
        unless ``force``. Returns the affected count.
        """
        qb = self.read_builder(conditions)
        if self.meta.soft_deletes and not force:
            qb.update(self.to_row({self.meta.deleted_at: self.clock()}))
        else:
            qb.delete()
        result = await qb.execute()
        return result.row_count or 0

    async def bulk_upsert(self, records: Sequence[Mapping[str, Any]], unique_keys: Sequence[str] = ("id",)) -> List[Model]:
        """
        Insert or update each record, matched on ``unique_keys``.

        Runs one existence read and one write per record, sequentially;
        it is not a single atomic statement, and a concurrent writer can
        insert the same key between the read and the write. Wrap the call
        in a transaction or rely on a unique index where that matters.
        """
        results: List[Model] = []
        for attrs in records:
            values = dict(attrs)
            self.check_fields(values)
            match = {k: values[k] for k in unique_keys if values.get(k) is not None}

            existing = await self._find_unscoped(match) if match else None

            if existing is None:
                results.extend(await self.bulk_insert([values]))
                continue

            changes = {k: v for k, v in values.items() if k not in match}
            if self.meta.timestamps and not changes.get(self.meta.updated_at):
                changes[self.meta.updated_at] = self.clock()
            if changes:
                await self.builder().update(self.to_row(changes)).where("id", "=", existing.id).execute()
                for attr, value in changes.items():
                    setattr(existing, attr, value)
                existing._snapshot()
            results.append(existing)
        return results

    async def _find_unscoped(self, conditions: Mapping[str, Any]) -> Optional[Model]:
        qb = self.apply_conditions(self.builder(), conditions).limit(1)
        row = await qb.first()
        return self.hydrate(row) if row is not None else None
