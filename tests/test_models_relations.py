"""
Relation tests — has-one, has-many, belongs-to and many-to-many, run on
both the relational (SQLite) and the document (memory) backends.
"""

import pytest

from gambit.faults import MissingIdentityFault, RelationNotFoundFault
from gambit.models import (
    BelongsTo,
    BelongsToMany,
    CharField,
    HasMany,
    HasOne,
    IntegerField,
    Model,
    TextField,
)


class Author(Model):
    name = CharField()
    articles = HasMany("Article")
    profile = HasOne("Profile")

    class Meta:
        table = "authors"


class Article(Model):
    title = CharField()
    author_id = IntegerField(null=True)
    author = BelongsTo("Author")
    labels = BelongsToMany("Label", pivot_table="article_label", with_pivot=["position"])

    class Meta:
        table = "articles"
        soft_deletes = True


class Profile(Model):
    bio = TextField(null=True)
    author_id = IntegerField(null=True)

    class Meta:
        table = "profiles"


class Label(Model):
    name = CharField()

    class Meta:
        table = "labels"


class Reader(Model):
    name = CharField()
    clubs = BelongsToMany("Club", pivot_table="club_reader")

    class Meta:
        table = "readers"


class Club(Model):
    name = CharField()

    class Meta:
        table = "clubs"
        soft_deletes = True


@pytest.fixture(params=["sqlite_schema", "memory_db"])
def store(request):
    return request.getfixturevalue(request.param)


async def make_labels(*names):
    return [await Label.create(name=name) for name in names]


# ============================================================================
# Declarations
# ============================================================================


class TestDeclarations:

    def test_relations_collected(self):
        assert set(Author._relations) == {"articles", "profile"}
        assert Article._relationships.get("labels").kind == "belongs_to_many"

    def test_default_keys(self):
        assert Author.articles.foreign_key_for(Author) == "author_id"
        assert Article.author.foreign_key == "author_id"
        assert Article.labels.foreign_pivot_key_for(Article) == "article_id"
        assert Article.labels.related_pivot_key == "label_id"

    def test_unknown_relation(self):
        with pytest.raises(RelationNotFoundFault):
            Author._relationships.get("comments")

    def test_pivot_ddl(self):
        sql = Article.labels.create_pivot_sql("sqlite")
        assert sql.startswith('CREATE TABLE IF NOT EXISTS "article_label"')
        assert '"article_id" INTEGER NOT NULL' in sql
        assert '"position" TEXT' in sql

    def test_bound_resolver_per_record(self):
        author = Author.from_row({"id": 1, "name": "A"})
        assert author.articles.record is author
        assert not author.articles.is_loaded
        assert author.articles.cached == []


# ============================================================================
# One-to-one / one-to-many
# ============================================================================


class TestHasAndBelongsTo:

    @pytest.mark.asyncio
    async def test_has_many(self, store):
        ann = await Author.create(name="Ann")
        bo = await Author.create(name="Bo")
        await Article.create(title="One", author_id=ann.id)
        await Article.create(title="Two", author_id=ann.id)
        await Article.create(title="Other", author_id=bo.id)

        titles = sorted(a.title for a in await ann.articles.load())
        assert titles == ["One", "Two"]

    @pytest.mark.asyncio
    async def test_has_many_skips_trashed(self, store):
        ann = await Author.create(name="Ann")
        keep = await Article.create(title="Keep", author_id=ann.id)
        gone = await Article.create(title="Gone", author_id=ann.id)
        await gone.delete()
        assert [a.id for a in await ann.articles.load()] == [keep.id]

    @pytest.mark.asyncio
    async def test_has_one(self, store):
        ann = await Author.create(name="Ann")
        assert await ann.profile.load() is None
        await Profile.create(bio="Writes things", author_id=ann.id)
        profile = await ann.profile.load(refresh=True)
        assert profile.bio == "Writes things"

    @pytest.mark.asyncio
    async def test_belongs_to(self, store):
        ann = await Author.create(name="Ann")
        article = await Article.create(title="One", author_id=ann.id)
        owner = await article.author.load()
        assert owner.name == "Ann"
        assert await Article(title="Orphan").author.load() is None

    @pytest.mark.asyncio
    async def test_unsaved_owner_has_no_children(self, store):
        assert await Author(name="New").articles.load() == []

    @pytest.mark.asyncio
    async def test_eager_loading(self, store):
        ann = await Author.create(name="Ann")
        bo = await Author.create(name="Bo")
        await Article.create(title="A1", author_id=ann.id)
        await Article.create(title="A2", author_id=ann.id)
        await Profile.create(bio="bio", author_id=bo.id)

        authors = await Author.find_all(order_by="name", include=["articles", "profile"])
        by_name = {a.name: a for a in authors}
        assert by_name["Ann"].articles.is_loaded
        assert sorted(a.title for a in by_name["Ann"].articles.cached) == ["A1", "A2"]
        assert by_name["Bo"].articles.cached == []
        assert by_name["Ann"].profile.cached is None
        assert by_name["Bo"].profile.cached.bio == "bio"

        data = by_name["Ann"].to_dict()
        assert sorted(a["title"] for a in data["articles"]) == ["A1", "A2"]

    @pytest.mark.asyncio
    async def test_eager_load_belongs_to(self, store):
        ann = await Author.create(name="Ann")
        await Article.create(title="A1", author_id=ann.id)
        await Article.create(title="Loose")
        articles = await Article.find_all(include=["author"])
        authors = {a.title: a.author.cached for a in articles}
        assert authors["A1"].name == "Ann"
        assert authors["Loose"] is None

    @pytest.mark.asyncio
    async def test_unknown_include_issues_no_query(self, store):
        await Author.create(name="Ann")
        with pytest.raises(RelationNotFoundFault):
            await Author.find_all(include=["articles", "nope"])


# ============================================================================
# Many-to-many
# ============================================================================


class TestManyToMany:

    @pytest.mark.asyncio
    async def test_attach_and_load_with_pivot_extras(self, store):
        article = await Article.create(title="One")
        red, blue = await make_labels("red", "blue")
        assert await article.labels.attach(red.id, {"position": "first"}) == 1
        await article.labels.attach([blue.id], {"position": "second"})

        labels = {label.name: label for label in await article.labels.load()}
        assert set(labels) == {"red", "blue"}
        assert labels["red"].pivot_position == "first"
        assert labels["blue"].pivot_position == "second"

    @pytest.mark.asyncio
    async def test_sync_replaces_attached_set(self, store):
        article = await Article.create(title="One")
        labels = await make_labels("a", "b", "c", "d")
        ids = [label.id for label in labels]
        await article.labels.attach([ids[0], ids[3]])

        await article.labels.sync([ids[1], ids[2]])
        attached = {label.id for label in await article.labels.load()}
        assert attached == {ids[1], ids[2]}
        assert await article.labels.count() == 2

    @pytest.mark.asyncio
    async def test_sync_without_detaching(self, store):
        article = await Article.create(title="One")
        a, b = await make_labels("a", "b")
        await article.labels.attach(a.id)
        await article.labels.sync([b.id], detaching=False)
        assert await article.labels.count() == 2

    @pytest.mark.asyncio
    async def test_detach(self, store):
        article = await Article.create(title="One")
        a, b, c = await make_labels("a", "b", "c")
        await article.labels.attach([a.id, b.id, c.id])
        assert await article.labels.detach(a.id) == 1
        assert await article.labels.count() == 2
        assert await article.labels.detach() == 2
        assert await article.labels.load() == []

    @pytest.mark.asyncio
    async def test_toggle_and_has(self, store):
        article = await Article.create(title="One")
        (a,) = await make_labels("a")
        assert await article.labels.has(a.id) is False
        assert await article.labels.toggle(a.id) is True
        assert await article.labels.has(a.id) is True
        assert await article.labels.toggle(a.id) is False
        assert await article.labels.count() == 0

    @pytest.mark.asyncio
    async def test_pivot_rows_scoped_to_owner(self, store):
        first = await Article.create(title="One")
        second = await Article.create(title="Two")
        (a,) = await make_labels("a")
        await first.labels.attach(a.id)
        assert await second.labels.count() == 0
        await second.labels.detach()
        assert await first.labels.count() == 1

    @pytest.mark.asyncio
    async def test_writes_invalidate_cached_load(self, store):
        article = await Article.create(title="One")
        (a,) = await make_labels("a")
        assert await article.labels.load() == []
        await article.labels.attach(a.id)
        assert [label.name for label in await article.labels.load()] == ["a"]

    @pytest.mark.asyncio
    async def test_eager_loading(self, store):
        first = await Article.create(title="One")
        second = await Article.create(title="Two")
        a, b = await make_labels("a", "b")
        await first.labels.attach([a.id, b.id])
        await second.labels.attach(b.id)

        articles = await Article.find_all(include=["labels"])
        names = {art.title: sorted(l.name for l in art.labels.cached) for art in articles}
        assert names == {"One": ["a", "b"], "Two": ["b"]}

    @pytest.mark.asyncio
    async def test_owner_needs_identity(self, store):
        with pytest.raises(MissingIdentityFault):
            await Article(title="Unsaved").labels.attach(1)
        assert await Article(title="Unsaved").labels.load() == []

    @pytest.mark.asyncio
    async def test_with_trashed_applies_to_next_load(self, store):
        reader = await Reader.create(name="r")
        club = await Club.create(name="chess")
        await reader.clubs.attach(club.id)
        await club.delete()

        assert await reader.clubs.load(refresh=True) == []
        Club.with_trashed()
        assert [c.name for c in await reader.clubs.load(refresh=True)] == ["chess"]
        assert await reader.clubs.load(refresh=True) == []


class TestRelationalQuery:

    @pytest.mark.asyncio
    async def test_join_statement(self, sqlite_db):
        article = Article.from_row({"id": 3, "title": "x"})
        stmt = article.labels.query().render()
        assert stmt.text == (
            'SELECT "labels".*, "article_label"."position" AS "pivot_position" FROM "labels" '
            'INNER JOIN "article_label" ON "labels"."id" = "article_label"."label_id" '
            'WHERE "article_label"."article_id" = ?'
        )
        assert stmt.params == [3]

    @pytest.mark.asyncio
    async def test_document_store_has_no_join_query(self, memory_db):
        article = Article.from_row({"id": "abc", "title": "x"})
        assert article.labels.query() is None

    @pytest.mark.asyncio
    async def test_unsaved_owner_has_no_query(self, sqlite_db):
        assert Article(title="x").labels.query() is None
