"""
Unit tests for the in-memory backing database.
"""

import asyncio
import pytest

from fusion.core.exceptions import (
    DocumentExistsError,
    DocumentMissingError,
    IndexAlreadyExistsError,
    IndexNotFoundError,
    StorageError,
    TableExistsError,
    TableNotFoundError,
)
from fusion.core.index import PRIMARY_INDEX_NAME, info_to_name
from fusion.storage.base import (
    MAXVAL,
    MINVAL,
    BoundMode,
    OrderDirection,
    Query,
    RangeQuery,
    sort_key,
)
from fusion.storage.memory import MemoryBackend


OWNER_SCORE = info_to_name({"fields": ["owner", "score"], "geo": False, "multi": None})


def primary_range(**kwargs) -> RangeQuery:
    return RangeQuery(index=PRIMARY_INDEX_NAME, fields=("id",), **kwargs)


def owner_score_range(**kwargs) -> RangeQuery:
    return RangeQuery(index=OWNER_SCORE, fields=("owner", "score"), **kwargs)


@pytest.fixture
async def loaded(backend, db, posts):
    """A posts table with documents and a built (owner, score) index."""
    await backend.create_table(db, "posts")
    await backend.insert(db, "posts", posts)
    await backend.create_index(db, "posts", OWNER_SCORE, ["owner", "score"])
    await backend.wait_index_ready(db, "posts", OWNER_SCORE)
    return backend


async def next_item(cursor, timeout: float = 1.0):
    return await asyncio.wait_for(cursor.__anext__(), timeout=timeout)


class TestValueOrdering:
    """sort_key tests."""

    def test_type_order(self):
        """Test the ordering across value types."""
        values = ["s", b"b", {"k": 1}, 3, None, True, [1], MAXVAL, MINVAL]
        ordered = sorted(values, key=sort_key)

        assert ordered == [MINVAL, [1], True, None, 3, {"k": 1}, b"b", "s", MAXVAL]

    def test_arrays_compare_elementwise(self):
        """Test compound keys compare field by field."""
        assert sort_key(["ann", 10]) < sort_key(["ann", 20])
        assert sort_key(["ann", MAXVAL]) < sort_key(["bob", MINVAL])
        assert sort_key(["ann", 10]) < sort_key(["ann", MAXVAL])

    def test_numbers_mix(self):
        """Test ints and floats compare numerically."""
        assert sort_key(1) < sort_key(1.5) < sort_key(2)
        assert sort_key(2) == sort_key(2.0)

    def test_unorderable(self):
        """Test values that cannot appear in documents."""
        with pytest.raises(TypeError):
            sort_key(object())


class TestTables:
    """Table management tests."""

    async def test_create_list_drop(self, backend, db):
        """Test the table lifecycle."""
        await backend.create_table(db, "b")
        await backend.create_table(db, "a")
        assert await backend.list_tables(db) == ["a", "b"]

        await backend.drop_table(db, "a")
        assert await backend.list_tables(db) == ["b"]

    async def test_duplicate_table(self, backend, db):
        """Test creating a table twice."""
        await backend.create_table(db, "posts")
        with pytest.raises(TableExistsError):
            await backend.create_table(db, "posts")

    async def test_missing_table(self, backend, db):
        """Test operations on a missing table."""
        with pytest.raises(TableNotFoundError):
            await backend.wait_table_ready(db, "ghost")
        with pytest.raises(TableNotFoundError):
            await backend.drop_table(db, "ghost")

    async def test_databases_are_separate(self, backend):
        """Test tables are scoped to a database."""
        await backend.create_table("one", "posts")
        assert await backend.list_tables("two") == []


class TestIndexes:
    """Index management tests."""

    async def test_build_delay(self, backend, db):
        """Test indexes finish building asynchronously."""
        backend.index_build_delay = 0.05
        await backend.create_table(db, "posts")
        await backend.create_index(db, "posts", OWNER_SCORE, ["owner", "score"])

        waiter = asyncio.create_task(backend.wait_index_ready(db, "posts", OWNER_SCORE))
        await asyncio.sleep(0.01)
        assert not waiter.done()

        await asyncio.wait_for(waiter, timeout=1)

    async def test_query_before_built(self, backend, db):
        """Test a building index cannot be queried."""
        backend.index_build_delay = 10
        await backend.create_table(db, "posts")
        await backend.create_index(db, "posts", OWNER_SCORE, ["owner", "score"])

        with pytest.raises(StorageError, match="before its construction was finished"):
            await backend.run(db, Query("posts", [owner_score_range()]))

    async def test_duplicate_index(self, loaded, db):
        """Test creating an index twice."""
        with pytest.raises(IndexAlreadyExistsError):
            await loaded.create_index(db, "posts", OWNER_SCORE, ["owner", "score"])
        with pytest.raises(IndexAlreadyExistsError):
            await loaded.create_index(db, "posts", PRIMARY_INDEX_NAME, ["id"])

    async def test_drop_index_fails_waiters(self, backend, db):
        """Test dropping an index that is still building."""
        backend.index_build_delay = 10
        await backend.create_table(db, "posts")
        await backend.create_index(db, "posts", OWNER_SCORE, ["owner", "score"])
        waiter = asyncio.create_task(backend.wait_index_ready(db, "posts", OWNER_SCORE))
        await asyncio.sleep(0)

        await backend.drop_index(db, "posts", OWNER_SCORE)

        with pytest.raises(IndexNotFoundError):
            await asyncio.wait_for(waiter, timeout=1)

    async def test_watch_indexes(self, backend, db):
        """Test the index watch reports the current set and every change."""
        await backend.create_table(db, "posts")
        cursor = backend.watch_indexes(db, "posts")

        assert await next_item(cursor) == []

        await backend.create_index(db, "posts", OWNER_SCORE, ["owner", "score"])
        assert await next_item(cursor) == [OWNER_SCORE]

        await backend.drop_index(db, "posts", OWNER_SCORE)
        assert await next_item(cursor) == []

        cursor.close()

    async def test_watch_ends_when_table_dropped(self, backend, db):
        """Test the index watch finishes with its table."""
        await backend.create_table(db, "posts")
        cursor = backend.watch_indexes(db, "posts")
        await next_item(cursor)

        await backend.drop_table(db, "posts")

        with pytest.raises(StopAsyncIteration):
            await next_item(cursor)


class TestRangeQueries:
    """Query evaluation tests."""

    async def test_full_scan(self, loaded, db):
        """Test scanning the primary index."""
        results = await loaded.run(db, Query("posts", [primary_range()]))
        assert [d["id"] for d in results] == [1, 2, 3, 4, 5]

    async def test_primary_point(self, loaded, db):
        """Test a lookup by id."""
        results = await loaded.run(db, Query("posts", [primary_range(lower=3, upper=3)]))
        assert results == [{"id": 3, "owner": "bob", "score": 20, "tag": "a"}]

    async def test_compound_prefix(self, loaded, db):
        """Test a predicate on the leading index field."""
        rng = owner_score_range(lower=["bob", MINVAL], upper=["bob", MAXVAL])
        results = await loaded.run(db, Query("posts", [rng]))

        assert sorted(d["id"] for d in results) == [3, 4]

    async def test_open_and_closed_bounds(self, loaded, db):
        """Test bound inclusivity."""
        closed = owner_score_range(lower=["ann", 10], upper=["ann", 30])
        results = await loaded.run(db, Query("posts", [closed]))
        assert sorted(d["id"] for d in results) == [1, 2]

        open_ = owner_score_range(
            lower=["ann", 10], upper=["ann", 30],
            left_bound=BoundMode.OPEN, right_bound=BoundMode.OPEN,
        )
        assert await loaded.run(db, Query("posts", [open_])) == []

    async def test_order_and_limit(self, loaded, db):
        """Test ordering along the index with a limit."""
        rng = owner_score_range(order=OrderDirection.DESCENDING)
        results = await loaded.run(db, Query("posts", [rng], limit=3))

        assert [d["id"] for d in results] == [5, 4, 3]

    async def test_union_keeps_duplicates(self, loaded, db):
        """Test ranges are concatenated without deduplication."""
        query = Query("posts", [primary_range(lower=1, upper=1), primary_range(lower=1, upper=2)])
        results = await loaded.run(db, query)

        assert [d["id"] for d in results] == [1, 1, 2]

    async def test_documents_missing_indexed_field_skipped(self, loaded, db):
        """Test documents without an indexed field are not in the index."""
        await loaded.insert(db, "posts", [{"id": 9, "owner": "ann"}])
        rng = owner_score_range(lower=["ann", MINVAL], upper=["ann", MAXVAL])
        results = await loaded.run(db, Query("posts", [rng]))

        assert 9 not in [d["id"] for d in results]

    async def test_results_are_copies(self, loaded, db):
        """Test callers cannot mutate stored documents."""
        results = await loaded.run(db, Query("posts", [primary_range(lower=1, upper=1)]))
        results[0]["owner"] = "mallory"

        again = await loaded.run(db, Query("posts", [primary_range(lower=1, upper=1)]))
        assert again[0]["owner"] == "ann"


class TestWrites:
    """Document write tests."""

    async def test_insert_generates_ids(self, backend, db):
        """Test documents without ids get one."""
        await backend.create_table(db, "posts")
        ids = await backend.insert(db, "posts", [{"title": "x"}])

        assert len(ids) == 1
        assert isinstance(ids[0], str)

    async def test_insert_duplicate(self, loaded, db):
        """Test inserting an existing id writes nothing."""
        with pytest.raises(DocumentExistsError):
            await loaded.insert(db, "posts", [{"id": 10}, {"id": 1}])

        results = await loaded.run(db, Query("posts", [primary_range(lower=10, upper=10)]))
        assert results == []

    async def test_update_merges(self, loaded, db):
        """Test update merges into the stored document."""
        await loaded.update(db, "posts", [{"id": 1, "score": 11}])
        results = await loaded.run(db, Query("posts", [primary_range(lower=1, upper=1)]))

        assert results[0] == {"id": 1, "owner": "ann", "score": 11, "tag": "a"}

    async def test_update_missing(self, loaded, db):
        """Test updating a missing document."""
        with pytest.raises(DocumentMissingError, match="The document with id '99' was missing."):
            await loaded.update(db, "posts", [{"id": 99, "score": 1}])

    async def test_replace(self, loaded, db):
        """Test replace overwrites the whole document."""
        await loaded.replace(db, "posts", [{"id": 1, "owner": "zed"}])
        results = await loaded.run(db, Query("posts", [primary_range(lower=1, upper=1)]))

        assert results[0] == {"id": 1, "owner": "zed"}

    async def test_upsert(self, loaded, db):
        """Test upsert inserts or merges."""
        await loaded.upsert(db, "posts", [{"id": 1, "score": 0}, {"id": 6, "owner": "dee"}])
        results = await loaded.run(db, Query("posts", [primary_range(lower=1, upper=6)]))

        by_id = {d["id"]: d for d in results}
        assert by_id[1]["owner"] == "ann"
        assert by_id[1]["score"] == 0
        assert by_id[6] == {"id": 6, "owner": "dee"}

    async def test_remove(self, loaded, db):
        """Test removing documents, ignoring missing ids."""
        assert await loaded.remove(db, "posts", [1, 99]) == [1, 99]

        results = await loaded.run(db, Query("posts", [primary_range()]))
        assert [d["id"] for d in results] == [2, 3, 4, 5]


class TestChangefeeds:
    """Live cursor tests."""

    async def test_initial_values_then_changes(self, loaded, db):
        """Test a feed yields current documents then matching writes."""
        rng = owner_score_range(lower=["ann", MINVAL], upper=["ann", MAXVAL])
        cursor = loaded.changes(db, Query("posts", [rng]))

        initial = [await next_item(cursor), await next_item(cursor)]
        assert sorted(c["new_val"]["id"] for c in initial) == [1, 2]

        await loaded.insert(db, "posts", [{"id": 7, "owner": "bob", "score": 1}])
        await loaded.update(db, "posts", [{"id": 1, "score": 12}])

        change = await next_item(cursor)
        assert change["old_val"]["score"] == 10
        assert change["new_val"]["score"] == 12

        cursor.close()

    async def test_document_leaving_range(self, loaded, db):
        """Test a write that moves a document out of range is reported."""
        rng = owner_score_range(lower=["ann", MINVAL], upper=["ann", MAXVAL])
        cursor = loaded.changes(db, Query("posts", [rng]))
        await next_item(cursor)
        await next_item(cursor)

        await loaded.update(db, "posts", [{"id": 2, "owner": "bob"}])
        change = await next_item(cursor)

        assert change["old_val"]["owner"] == "ann"
        assert change["new_val"]["owner"] == "bob"
        cursor.close()

    async def test_remove_reported(self, loaded, db):
        """Test deletions produce a null new value."""
        cursor = loaded.changes(db, Query("posts", [primary_range(lower=5, upper=5)]))
        await next_item(cursor)

        await loaded.remove(db, "posts", [5])
        change = await next_item(cursor)

        assert change["new_val"] is None
        assert change["old_val"]["id"] == 5
        cursor.close()

    async def test_limit_applies_to_initial_results(self, loaded, db):
        """Test a limited feed still reports later changes."""
        cursor = loaded.changes(db, Query("posts", [primary_range()], limit=1))
        assert (await next_item(cursor))["new_val"]["id"] == 1

        await loaded.insert(db, "posts", [{"id": 8}])
        assert (await next_item(cursor))["new_val"]["id"] == 8
        cursor.close()

    async def test_closed_feed_detached(self, loaded, db):
        """Test a closed feed stops receiving changes."""
        cursor = loaded.changes(db, Query("posts", [primary_range(lower=1, upper=1)]))
        cursor.close()

        await loaded.update(db, "posts", [{"id": 1, "score": 0}])

        with pytest.raises(StopAsyncIteration):
            await next_item(cursor)

    async def test_feed_fails_when_table_dropped(self, loaded, db):
        """Test dropping the table aborts its feeds."""
        cursor = loaded.changes(db, Query("posts", [primary_range(lower=1, upper=1)]))
        await next_item(cursor)

        await loaded.drop_table(db, "posts")

        with pytest.raises(StorageError, match="Changefeed aborted"):
            await next_item(cursor)


class TestPersistence:
    """Snapshot tests."""

    async def test_save_and_load(self, loaded, db, tmp_path):
        """Test documents and indexes survive a snapshot."""
        path = tmp_path / "fusion.snapshot"
        loaded.save(path)

        restored = MemoryBackend()
        restored.load(path)

        assert await restored.list_tables(db) == ["posts"]
        await asyncio.wait_for(restored.wait_index_ready(db, "posts", OWNER_SCORE), timeout=1)

        rng = owner_score_range(lower=["ann", MINVAL], upper=["ann", MAXVAL])
        results = await restored.run(db, Query("posts", [rng], limit=None))
        assert sorted(d["id"] for d in results) == [1, 2]
