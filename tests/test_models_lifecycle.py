"""
Record lifecycle tests — hook order, statements issued, timestamps,
soft deletes, bulk operations and dirty tracking.

Every test runs against the recording adapter, so assertions are about
exactly which statements reach the database.
"""

import pytest

from conftest import FIXED_NOW, affected, rows
from gambit.db.backends.base import QueryResult
from gambit.faults import (
    MissingIdentityFault,
    RecordNotFoundFault,
    ScopeNotFoundFault,
    SoftDeleteNotEnabledFault,
    UnknownFieldFault,
    ValidationFault,
)
from gambit.models import CharField, HookEvent, IntegerField, Model, TextField
from gambit.validation import RequiredValidator


class Account(Model):
    name = CharField(validators=[RequiredValidator()])
    email = CharField(null=True)
    status = CharField(default="active")
    visits = IntegerField(default=0)

    class Meta:
        table = "accounts"
        timestamps = True


class Memo(Model):
    body = TextField(null=True)

    class Meta:
        table = "memos"
        soft_deletes = True


class Counter(Model):
    label = CharField(null=True)

    class Meta:
        table = "counters"


def trace(model_cls, calls):
    """Register a recorder on every hook event of ``model_cls``."""
    for event in HookEvent:
        model_cls.hook(event, lambda record, e=event.value: calls.append(e))


def stored_account(**overrides):
    row = {
        "id": 5,
        "name": "Ann",
        "email": None,
        "status": "active",
        "visits": 2,
        "created_at": "2024-01-01T00:00:00+00:00",
        "updated_at": "2024-01-01T00:00:00+00:00",
    }
    row.update(overrides)
    return Account.from_row(row)


# ============================================================================
# Schema
# ============================================================================


class TestSchema:

    def test_injected_fields(self):
        assert list(Account._fields) == [
            "id", "name", "email", "status", "visits", "created_at", "updated_at",
        ]
        assert "deleted_at" in Memo._fields
        assert "created_at" not in Counter._fields

    def test_each_type_owns_its_state(self):
        assert Account._state is not Memo._state
        assert Account._lifecycle.model_cls is Account

    def test_default_table_name(self):
        class LineItem(Model):
            pass

        assert LineItem._meta.table == "line_items"

    def test_create_table_sql(self):
        sql = Counter.create_table_sql()
        assert sql.startswith('CREATE TABLE IF NOT EXISTS "counters" (')
        assert '"label"' in sql


# ============================================================================
# Save / create
# ============================================================================


class TestSaveNew:

    @pytest.mark.asyncio
    async def test_hook_order(self, recording_db, adapter):
        calls = []
        trace(Account, calls)
        await Account(name="Ann").save()
        assert calls == [
            "before_save", "before_validate", "after_validate",
            "before_create", "after_create", "after_save",
        ]
        assert adapter.kinds() == ["insert"]

    @pytest.mark.asyncio
    async def test_insert_statement_and_identity(self, recording_db, adapter, frozen_clock):
        account = await Account(name="Ann").save()
        stmt = adapter.last
        assert stmt.text == (
            'INSERT INTO "accounts" ("name", "status", "visits", "created_at", "updated_at") '
            "VALUES (?, ?, ?, ?, ?)"
        )
        assert stmt.params == ["Ann", "active", 0, FIXED_NOW.isoformat(), FIXED_NOW.isoformat()]
        assert account.id == 1
        assert account.is_clean()

    @pytest.mark.asyncio
    async def test_validation_failure_issues_nothing(self, recording_db, adapter):
        calls = []
        trace(Account, calls)
        with pytest.raises(ValidationFault) as exc:
            await Account(name="").save()
        assert exc.value.errors == {"name": ["name is required"]}
        assert "before_create" not in calls
        assert adapter.statements == []

    @pytest.mark.asyncio
    async def test_skip_validation(self, recording_db, adapter):
        await Account(name="").save(skip_validation=True)
        assert adapter.kinds() == ["insert"]

    @pytest.mark.asyncio
    async def test_hook_may_fill_values(self, recording_db, adapter):
        Account.hook(HookEvent.BEFORE_SAVE, lambda r: setattr(r, "email", r.name.lower() + "@x.io"))
        account = await Account(name="Ann").save()
        assert account.email == "ann@x.io"
        assert "ann@x.io" in adapter.last.params

    @pytest.mark.asyncio
    async def test_record_without_values_inserts_nulls(self, recording_db, adapter):
        await Counter().save()
        assert adapter.last.text == 'INSERT INTO "counters" ("label") VALUES (?)'
        assert adapter.last.params == [None]


class TestCreate:

    @pytest.mark.asyncio
    async def test_timestamps_share_one_instant(self, recording_db):
        account = await Account.create({"name": "Ann"})
        assert account.id is not None
        assert account.created_at is not None
        assert account.created_at == account.updated_at

    @pytest.mark.asyncio
    async def test_keyword_form(self, recording_db, adapter):
        account = await Account.create(name="Bo", visits=3)
        assert account.visits == 3
        assert adapter.kinds() == ["insert"]

    @pytest.mark.asyncio
    async def test_hook_order(self, recording_db):
        calls = []
        trace(Account, calls)
        await Account.create(name="Ann")
        assert calls == ["before_create", "after_create"]

    @pytest.mark.asyncio
    async def test_unknown_field_rejected_before_hooks(self, recording_db, adapter):
        calls = []
        trace(Account, calls)
        with pytest.raises(UnknownFieldFault):
            await Account.create(name="Ann", nickname="A")
        assert calls == []
        assert adapter.statements == []

    @pytest.mark.asyncio
    async def test_rules_run(self, recording_db, adapter):
        with pytest.raises(ValidationFault):
            await Account.create(name=None)
        assert adapter.statements == []


# ============================================================================
# Update
# ============================================================================


class TestSavePersisted:

    @pytest.mark.asyncio
    async def test_only_changed_fields_sent(self, recording_db, adapter, frozen_clock):
        calls = []
        trace(Account, calls)
        account = stored_account()
        account.email = "ann@x.io"
        await account.save()
        stmt = adapter.last
        assert stmt.text == 'UPDATE "accounts" SET "email" = ?, "updated_at" = ? WHERE "id" = ?'
        assert stmt.params == ["ann@x.io", FIXED_NOW.isoformat(), 5]
        assert calls == [
            "before_save", "before_validate", "after_validate",
            "before_update", "after_update", "after_save",
        ]
        assert account.is_clean()

    @pytest.mark.asyncio
    async def test_unchanged_record_without_timestamps(self, recording_db, adapter):
        counter = Counter.from_row({"id": 3, "label": "a"})
        calls = []
        trace(Counter, calls)
        await counter.save()
        assert adapter.statements == []
        assert calls[-2:] == ["after_update", "after_save"]


class TestUpdate:

    @pytest.mark.asyncio
    async def test_update_statement(self, recording_db, adapter, frozen_clock):
        account = stored_account(id=3)
        await account.update(status="paused")
        stmt = adapter.last
        assert stmt.text == 'UPDATE "accounts" SET "status" = ?, "updated_at" = ? WHERE "id" = ?'
        assert stmt.params == ["paused", FIXED_NOW.isoformat(), 3]
        assert account.status == "paused"
        assert account.updated_at == FIXED_NOW
        assert account.is_clean()

    @pytest.mark.asyncio
    async def test_requires_identity(self, recording_db, adapter):
        with pytest.raises(MissingIdentityFault) as exc:
            await Account(name="Ann").update(status="x")
        assert str(exc.value) == "[MISSING_IDENTITY] Cannot update Account without an id"
        assert adapter.statements == []

    @pytest.mark.asyncio
    async def test_validates_merged_view(self, recording_db, adapter):
        account = stored_account()
        with pytest.raises(ValidationFault):
            await account.update(name="")
        assert adapter.statements == []
        assert account.name == "Ann"

    @pytest.mark.asyncio
    async def test_hooks(self, recording_db):
        calls = []
        trace(Account, calls)
        await stored_account().update({"visits": 9})
        assert calls == ["before_update", "after_update"]

    @pytest.mark.asyncio
    async def test_unknown_field(self, recording_db):
        with pytest.raises(UnknownFieldFault):
            await stored_account().update(nickname="A")


# ============================================================================
# Delete / restore
# ============================================================================


class TestHardDelete:

    @pytest.mark.asyncio
    async def test_delete_clears_identity(self, recording_db, adapter):
        calls = []
        trace(Counter, calls)
        counter = Counter.from_row({"id": 4, "label": "a"})
        assert await counter.delete() is True
        assert adapter.last.text == 'DELETE FROM "counters" WHERE "id" = ?'
        assert adapter.last.params == [4]
        assert counter.id is None
        assert calls == ["before_delete", "after_delete"]

    @pytest.mark.asyncio
    async def test_raising_hook_aborts(self, recording_db, adapter):
        def refuse(record):
            raise PermissionError("locked")

        Counter.hook(HookEvent.BEFORE_DELETE, refuse)
        counter = Counter.from_row({"id": 4})
        with pytest.raises(PermissionError):
            await counter.delete()
        assert adapter.statements == []
        assert counter.id == 4

    @pytest.mark.asyncio
    async def test_nothing_affected(self, recording_db, adapter):
        calls = []
        trace(Counter, calls)
        adapter.queue(affected(0))
        counter = Counter.from_row({"id": 4})
        assert await counter.delete() is False
        assert counter.id == 4
        assert "after_delete" not in calls

    @pytest.mark.asyncio
    async def test_requires_identity(self, recording_db):
        with pytest.raises(MissingIdentityFault):
            await Counter().delete()

    @pytest.mark.asyncio
    async def test_restore_needs_soft_deletes(self, recording_db):
        with pytest.raises(SoftDeleteNotEnabledFault):
            await Counter.from_row({"id": 1}).restore()


class TestSoftDelete:

    @pytest.mark.asyncio
    async def test_delete_marks_row(self, recording_db, adapter, frozen_clock):
        memo = Memo.from_row({"id": 2, "body": "x", "deleted_at": None})
        assert await memo.delete() is True
        assert adapter.last.text == 'UPDATE "memos" SET "deleted_at" = ? WHERE "id" = ?'
        assert adapter.last.params == [FIXED_NOW.isoformat(), 2]
        assert memo.deleted_at == FIXED_NOW
        assert memo.id == 2

    @pytest.mark.asyncio
    async def test_force_delete(self, recording_db, adapter):
        memo = Memo.from_row({"id": 2})
        assert await memo.force_delete() is True
        assert adapter.last.text == 'DELETE FROM "memos" WHERE "id" = ?'
        assert memo.id is None

    @pytest.mark.asyncio
    async def test_restore_live_record_is_noop(self, recording_db, adapter):
        memo = Memo.from_row({"id": 2, "deleted_at": None})
        assert await memo.restore() is False
        assert adapter.statements == []

    @pytest.mark.asyncio
    async def test_restore_trashed_record(self, recording_db, adapter):
        memo = Memo.from_row({"id": 2, "deleted_at": "2024-01-01T00:00:00"})
        assert await memo.restore() is True
        assert adapter.last.text == 'UPDATE "memos" SET "deleted_at" = ? WHERE "id" = ?'
        assert adapter.last.params == [None, 2]
        assert memo.deleted_at is None


# ============================================================================
# Reads
# ============================================================================


class TestReads:

    @pytest.mark.asyncio
    async def test_live_rows_by_default(self, recording_db, adapter):
        await Memo.find_all()
        assert adapter.last.text == 'SELECT * FROM "memos" WHERE "deleted_at" IS NULL'

    @pytest.mark.asyncio
    async def test_trashed_modifiers_are_single_use(self, recording_db, adapter):
        await Memo.with_trashed().find_all()
        assert adapter.last.text == 'SELECT * FROM "memos"'
        await Memo.only_trashed().count()
        assert adapter.last.text == (
            'SELECT COUNT(*) AS "count" FROM "memos" WHERE "deleted_at" IS NOT NULL'
        )
        await Memo.find_all()
        assert adapter.last.text == 'SELECT * FROM "memos" WHERE "deleted_at" IS NULL'

    @pytest.mark.asyncio
    async def test_conditions_order_and_paging(self, recording_db, adapter):
        await Memo.find_all(where={"body": None, "id": [1, 2]}, order_by="-id", limit=5, offset=10)
        assert adapter.last.text == (
            'SELECT * FROM "memos" WHERE "body" IS NULL AND "id" IN (?, ?) '
            'AND "deleted_at" IS NULL ORDER BY "id" DESC LIMIT 5 OFFSET 10'
        )
        assert adapter.last.params == [1, 2]

    @pytest.mark.asyncio
    async def test_hydration_keeps_extra_columns(self, recording_db, adapter):
        adapter.queue(rows({"id": 2, "label": "x", "score": 7}))
        counter = await Counter.find_by_id(2)
        assert counter.label == "x"
        assert counter.score == 7
        assert counter.is_clean()
        assert adapter.last.text == 'SELECT * FROM "counters" WHERE "id" = ? LIMIT 1'

    @pytest.mark.asyncio
    async def test_find_one_miss(self, recording_db):
        assert await Counter.find_one({"label": "nope"}) is None

    @pytest.mark.asyncio
    async def test_first_and_last(self, recording_db, adapter):
        await Counter.first()
        assert adapter.last.text == 'SELECT * FROM "counters" ORDER BY "id" ASC LIMIT 1'
        await Counter.last()
        assert adapter.last.text == 'SELECT * FROM "counters" ORDER BY "id" DESC LIMIT 1'

    @pytest.mark.asyncio
    async def test_count_and_exists(self, recording_db, adapter):
        adapter.queue(rows({"count": 4}), rows({"count": 0}))
        assert await Counter.count({"label": "a"}) == 4
        assert adapter.last.text == 'SELECT COUNT(*) AS "count" FROM "counters" WHERE "label" = ?'
        assert await Counter.exists({"label": "b"}) is False

    @pytest.mark.asyncio
    async def test_pluck(self, recording_db, adapter):
        adapter.queue(rows({"label": "a"}, {"label": "b"}))
        assert await Counter.pluck("label", order_by="label") == ["a", "b"]
        assert adapter.last.text == 'SELECT "label" FROM "counters" ORDER BY "label" ASC'


class TestScopes:

    @pytest.mark.asyncio
    async def test_global_scope_runs_before_conditions(self, recording_db, adapter):
        Memo.add_global_scope("recent", lambda qb: qb.where("id", ">", 10))
        await Memo.find_all(where={"body": "x"})
        assert adapter.last.text == (
            'SELECT * FROM "memos" WHERE "id" > ? AND "body" = ? AND "deleted_at" IS NULL'
        )
        assert adapter.last.params == [10, "x"]

    @pytest.mark.asyncio
    async def test_removed_global_scope(self, recording_db, adapter):
        Counter.add_global_scope("labelled", lambda qb: qb.where_not_null("label"))
        assert Counter.remove_global_scope("labelled") is True
        await Counter.find_all()
        assert adapter.last.text == 'SELECT * FROM "counters"'

    @pytest.mark.asyncio
    async def test_local_scope_with_arguments(self, recording_db, adapter):
        @Counter.scope("labelled")
        def labelled(qb, label):
            return qb.where("label", "=", label)

        await Counter.query().scope("labelled", "a").order_by("id").get()
        assert adapter.last.text == 'SELECT * FROM "counters" WHERE "label" = ? ORDER BY "id" ASC'
        assert adapter.last.params == ["a"]

    @pytest.mark.asyncio
    async def test_query_skips_global_scope(self, recording_db, adapter):
        Memo.add_global_scope("recent", lambda qb: qb.where("id", ">", 10))
        await Memo.query().without_global_scope("recent").where("body", "x").get()
        assert adapter.last.text == 'SELECT * FROM "memos" WHERE "body" = ? AND "deleted_at" IS NULL'

    def test_unknown_scope(self):
        with pytest.raises(ScopeNotFoundFault):
            Counter.query().scope("missing")

    @pytest.mark.asyncio
    async def test_query_honours_trashed_modifier(self, recording_db, adapter):
        Memo.only_trashed()
        await Memo.query().count()
        assert adapter.last.text.endswith('WHERE "deleted_at" IS NOT NULL')


# ============================================================================
# Bulk
# ============================================================================


class TestBulk:

    @pytest.mark.asyncio
    async def test_bulk_update_single_statement(self, recording_db, adapter, frozen_clock):
        adapter.queue(affected(3))
        count = await Account.bulk_update({"status": "active"}, {"status": "inactive"})
        assert count == 3
        assert len(adapter.statements) == 1
        stmt = adapter.last
        assert stmt.text == (
            'UPDATE "accounts" SET "status" = ?, "updated_at" = ? WHERE "status" = ?'
        )
        assert stmt.params == ["inactive", FIXED_NOW.isoformat(), "active"]

    @pytest.mark.asyncio
    async def test_bulk_update_skips_hooks(self, recording_db):
        calls = []
        trace(Account, calls)
        await Account.bulk_update({"status": "a"}, {"visits": 0})
        assert calls == []

    @pytest.mark.asyncio
    async def test_bulk_insert_assigns_sequential_ids(self, recording_db, adapter):
        adapter.queue(QueryResult(row_count=2, insert_id=10))
        counters = await Counter.bulk_insert([{"label": "a"}, {"label": "b"}])
        assert adapter.last.text == 'INSERT INTO "counters" ("label") VALUES (?), (?)'
        assert [c.id for c in counters] == [10, 11]
        assert all(c.is_clean() for c in counters)

    @pytest.mark.asyncio
    async def test_bulk_insert_empty(self, recording_db, adapter):
        assert await Counter.bulk_insert([]) == []
        assert adapter.statements == []

    @pytest.mark.asyncio
    async def test_bulk_delete_soft(self, recording_db, adapter, frozen_clock):
        adapter.queue(affected(2))
        assert await Memo.bulk_delete({"body": "x"}) == 2
        assert adapter.last.text == (
            'UPDATE "memos" SET "deleted_at" = ? WHERE "body" = ? AND "deleted_at" IS NULL'
        )

    @pytest.mark.asyncio
    async def test_bulk_delete_forced(self, recording_db, adapter):
        await Memo.with_trashed().bulk_delete({"body": "x"}, force=True)
        assert adapter.last.text == 'DELETE FROM "memos" WHERE "body" = ?'

    @pytest.mark.asyncio
    async def test_bulk_upsert_reads_then_writes_per_record(self, recording_db, adapter):
        adapter.queue(rows({"id": 7, "label": "old"}))
        results = await Counter.bulk_upsert([{"id": 7, "label": "new"}, {"label": "fresh"}])
        assert adapter.kinds() == ["select", "update", "insert"]
        assert adapter.statements[1].text == 'UPDATE "counters" SET "label" = ? WHERE "id" = ?'
        assert adapter.statements[1].params == ["new", 7]
        assert results[0].id == 7
        assert results[0].label == "new"
        assert results[1].label == "fresh"

    @pytest.mark.asyncio
    async def test_bulk_upsert_by_other_key(self, recording_db, adapter):
        adapter.queue(rows())
        await Counter.bulk_upsert([{"label": "a"}], unique_keys=("label",))
        assert adapter.statements[0].text == 'SELECT * FROM "counters" WHERE "label" = ? LIMIT 1'
        assert adapter.kinds() == ["select", "insert"]


# ============================================================================
# Single-column helpers
# ============================================================================


class TestColumnHelpers:

    @pytest.mark.asyncio
    async def test_increment(self, recording_db, adapter):
        account = stored_account(visits=2)
        await account.increment("visits", 3)
        assert adapter.last.text == 'UPDATE "accounts" SET "visits" = "visits" + ? WHERE "id" = ?'
        assert adapter.last.params == [3, 5]
        assert account.visits == 5
        assert account.is_clean("visits")

    @pytest.mark.asyncio
    async def test_decrement(self, recording_db, adapter):
        account = stored_account(visits=2)
        await account.decrement("visits")
        assert adapter.last.params == [-1, 5]
        assert account.visits == 1

    @pytest.mark.asyncio
    async def test_increment_unknown_field(self, recording_db):
        with pytest.raises(UnknownFieldFault):
            await stored_account().increment("likes")

    @pytest.mark.asyncio
    async def test_touch(self, recording_db, adapter, frozen_clock):
        account = stored_account()
        await account.touch()
        assert adapter.last.text == 'UPDATE "accounts" SET "updated_at" = ? WHERE "id" = ?'
        assert account.updated_at == FIXED_NOW

    @pytest.mark.asyncio
    async def test_fresh_ignores_scopes(self, recording_db, adapter):
        Memo.add_global_scope("recent", lambda qb: qb.where("id", ">", 10))
        adapter.queue(rows({"id": 2, "body": "reloaded", "deleted_at": None}))
        memo = Memo.from_row({"id": 2, "body": "stale"})
        memo.body = "edited"
        await memo.fresh()
        assert adapter.last.text == 'SELECT * FROM "memos" WHERE "id" = ? LIMIT 1'
        assert memo.body == "reloaded"
        assert memo.is_clean()

    @pytest.mark.asyncio
    async def test_fresh_missing_row(self, recording_db):
        with pytest.raises(RecordNotFoundFault):
            await Counter.from_row({"id": 99}).fresh()


# ============================================================================
# Attributes and dirty tracking
# ============================================================================


class TestAttributes:

    def test_defaults_applied(self):
        account = Account(name="Ann")
        assert account.status == "active"
        assert account.visits == 0
        assert account.id is None

    def test_unknown_constructor_key(self):
        with pytest.raises(UnknownFieldFault):
            Account(nickname="A")

    def test_unknown_assignment(self):
        with pytest.raises(UnknownFieldFault):
            stored_account().nickname = "A"

    def test_dirty_tracking(self):
        account = stored_account()
        assert account.is_clean()
        account.visits = 3
        assert account.is_dirty()
        assert account.is_dirty("visits")
        assert account.is_clean("name")
        assert account.get_dirty() == {"visits": 3}

    def test_dirty_unknown_field(self):
        with pytest.raises(UnknownFieldFault):
            stored_account().is_dirty("nickname")

    def test_mutable_values_snapshotted(self):
        memo = Memo.from_row({"id": 1, "body": "a"})
        memo.body += "b"
        assert memo.get_dirty() == {"body": "ab"}

    def test_to_dict(self):
        data = stored_account().to_dict(exclude=["email"])
        assert data["name"] == "Ann"
        assert data["created_at"] == "2024-01-01T00:00:00+00:00"
        assert "email" not in data

    def test_equality_by_identity(self):
        assert Counter.from_row({"id": 1}) == Counter.from_row({"id": 1, "label": "x"})
        assert Counter() != Counter()
        assert len({Counter.from_row({"id": 1}), Counter.from_row({"id": 1})}) == 1

    def test_missing_attribute(self):
        with pytest.raises(AttributeError):
            Counter().nothing_here
