"""
In-memory backing database.

A complete asyncio implementation of the Backend contract, used for
development, tests, and single-process deployments. Data can be
persisted between runs with msgpack snapshots.
"""

from __future__ import annotations

import asyncio
import copy
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .base import (
    Backend,
    BoundMode,
    Cursor,
    OrderDirection,
    Query,
    RangeQuery,
    sort_key,
)
from .serialization import read_snapshot, write_snapshot
from ..core.exceptions import (
    DocumentExistsError,
    DocumentMissingError,
    IndexAlreadyExistsError,
    IndexNotFoundError,
    StorageError,
    TableExistsError,
    TableNotFoundError,
    ValidationError,
)
from ..core.index import PRIMARY_INDEX_NAME
from ..utils.logging import get_logger
from ..utils.validation import validate_document


logger = get_logger(__name__)

_MISSING = object()


class _End:
    pass


_END = _End()


@dataclass
class _Failure:
    error: BaseException


class MemoryCursor(Cursor):
    """
    Queue-backed cursor.

    Producers push items with push(), end the feed with finish(), or
    fail it with fail(). close() wakes a pending reader, which then sees
    the end of iteration.
    """

    def __init__(self, on_close: Optional[Callable[["MemoryCursor"], None]] = None):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._on_close = on_close

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, item: Any) -> None:
        if not self._closed:
            self._queue.put_nowait(item)

    def finish(self) -> None:
        if not self._closed:
            self._queue.put_nowait(_END)

    def fail(self, error: BaseException) -> None:
        if not self._closed:
            self._queue.put_nowait(_Failure(error))

    async def __anext__(self) -> Any:
        if self._closed:
            raise StopAsyncIteration

        item = await self._queue.get()
        if self._closed or item is _END:
            self._detach()
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            self._detach()
            raise item.error
        return item

    def close(self) -> None:
        if self._closed:
            return
        self._detach()
        # Wake a reader blocked in __anext__
        self._queue.put_nowait(_END)

    def _detach(self) -> None:
        self._closed = True
        if self._on_close is not None:
            on_close, self._on_close = self._on_close, None
            on_close(self)


@dataclass
class _IndexData:
    fields: Tuple[str, ...]
    built: asyncio.Event = field(default_factory=asyncio.Event)
    dropped: bool = False
    task: Optional[asyncio.Task] = None


@dataclass
class _TableData:
    # sort_key(id) -> document
    documents: Dict[Any, Dict[str, Any]] = field(default_factory=dict)
    indexes: Dict[str, _IndexData] = field(default_factory=dict)
    index_watchers: List[MemoryCursor] = field(default_factory=list)
    feeds: List[Tuple[Query, MemoryCursor]] = field(default_factory=list)


class MemoryBackend(Backend):
    """
    In-memory document store with secondary indexes and changefeeds.

    Index builds complete asynchronously after ``index_build_delay``
    seconds, so readiness tracking behaves as it would against a
    networked database.

    Example:
        >>> backend = MemoryBackend()
        >>> await backend.create_table("fusion", "posts")
        >>> await backend.insert("fusion", "posts", [{"id": 1, "owner": "ann"}])
        >>> backend.save("./fusion.snapshot")
    """

    def __init__(self, index_build_delay: float = 0.0):
        self.index_build_delay = index_build_delay
        self._databases: Dict[str, Dict[str, _TableData]] = {}

    # =========================================================================
    # TABLES
    # =========================================================================

    def _tables(self, db: str) -> Dict[str, _TableData]:
        return self._databases.setdefault(db, {})

    def _table(self, db: str, table: str) -> _TableData:
        data = self._tables(db).get(table)
        if data is None:
            raise TableNotFoundError(f"Table `{db}.{table}` does not exist.")
        return data

    async def list_tables(self, db: str) -> List[str]:
        await asyncio.sleep(0)
        return sorted(self._tables(db))

    async def create_table(self, db: str, table: str) -> None:
        await asyncio.sleep(0)
        tables = self._tables(db)
        if table in tables:
            raise TableExistsError(f"Table `{db}.{table}` already exists.")
        tables[table] = _TableData()
        logger.debug(f"Created table {db}.{table}")

    async def drop_table(self, db: str, table: str) -> None:
        await asyncio.sleep(0)
        data = self._table(db, table)
        del self._tables(db)[table]

        for index in data.indexes.values():
            self._discard_index(index)

        for _, cursor in list(data.feeds):
            cursor.fail(StorageError("Changefeed aborted (table unavailable)."))
        for cursor in list(data.index_watchers):
            cursor.finish()

        logger.debug(f"Dropped table {db}.{table}")

    async def wait_table_ready(self, db: str, table: str) -> None:
        await asyncio.sleep(0)
        self._table(db, table)

    # =========================================================================
    # INDEXES
    # =========================================================================

    async def create_index(self, db: str, table: str, name: str, fields: List[str]) -> None:
        await asyncio.sleep(0)
        data = self._table(db, table)
        if name in data.indexes or name == PRIMARY_INDEX_NAME:
            raise IndexAlreadyExistsError(f"Index `{name}` already exists on table `{db}.{table}`.")

        index = _IndexData(fields=tuple(fields))
        index.task = asyncio.get_running_loop().create_task(self._build(index))
        data.indexes[name] = index

        self._notify_index_watchers(data)

    async def _build(self, index: _IndexData) -> None:
        if self.index_build_delay > 0:
            await asyncio.sleep(self.index_build_delay)
        index.built.set()

    async def drop_index(self, db: str, table: str, name: str) -> None:
        await asyncio.sleep(0)
        data = self._table(db, table)
        index = data.indexes.pop(name, None)
        if index is None:
            raise IndexNotFoundError(f"Index `{name}` does not exist on table `{db}.{table}`.")

        self._discard_index(index)
        self._notify_index_watchers(data)

    async def wait_index_ready(self, db: str, table: str, name: str) -> None:
        index = self._table(db, table).indexes.get(name)
        if index is None:
            raise IndexNotFoundError(f"Index `{name}` does not exist on table `{db}.{table}`.")

        await index.built.wait()
        if index.dropped:
            raise IndexNotFoundError(f"Index `{name}` was dropped from table `{db}.{table}`.")

    def watch_indexes(self, db: str, table: str) -> MemoryCursor:
        data = self._table(db, table)

        cursor = MemoryCursor(on_close=lambda c: _discard(data.index_watchers, c))
        data.index_watchers.append(cursor)
        cursor.push(sorted(data.indexes))
        return cursor

    def _discard_index(self, index: _IndexData) -> None:
        index.dropped = True
        if index.task is not None and not index.task.done():
            index.task.cancel()
        index.built.set()

    def _notify_index_watchers(self, data: _TableData) -> None:
        names = sorted(data.indexes)
        for cursor in list(data.index_watchers):
            cursor.push(list(names))

    # =========================================================================
    # READS
    # =========================================================================

    async def run(self, db: str, query: Query) -> List[Dict[str, Any]]:
        await asyncio.sleep(0)
        return self._evaluate(db, query)

    def changes(self, db: str, query: Query) -> MemoryCursor:
        data = self._table(db, query.table)
        initial = self._evaluate(db, query)

        cursor = MemoryCursor(on_close=lambda c: _discard_feed(data.feeds, c))
        data.feeds.append((query, cursor))

        for doc in initial:
            cursor.push({"new_val": doc})
        return cursor

    def _evaluate(self, db: str, query: Query) -> List[Dict[str, Any]]:
        data = self._table(db, query.table)

        results: List[Dict[str, Any]] = []
        for rng in query.ranges:
            self._check_index(db, query.table, data, rng)

            rows = []
            for doc in data.documents.values():
                key = _index_key(doc, rng)
                if key is not _MISSING and _in_range(key, rng):
                    rows.append((sort_key(key), sort_key(doc["id"]), doc))

            if rng.order is not None:
                rows.sort(
                    key=lambda r: (r[0], r[1]),
                    reverse=rng.order is OrderDirection.DESCENDING,
                )
            results.extend(copy.deepcopy(doc) for _, _, doc in rows)

        if query.limit is not None:
            results = results[:query.limit]
        return results

    def _check_index(self, db: str, table: str, data: _TableData, rng: RangeQuery) -> None:
        if rng.index == PRIMARY_INDEX_NAME:
            return
        index = data.indexes.get(rng.index)
        if index is None:
            raise IndexNotFoundError(f"Index `{rng.index}` was not found on table `{db}.{table}`.")
        if not index.built.is_set():
            raise StorageError(
                f"Index `{rng.index}` on table `{db}.{table}` was accessed "
                "before its construction was finished."
            )

    # =========================================================================
    # WRITES
    # =========================================================================

    async def insert(self, db: str, table: str, documents: List[Dict[str, Any]]) -> List[Any]:
        await asyncio.sleep(0)
        data = self._table(db, table)

        prepared = []
        seen = set()
        for doc in documents:
            doc = copy.deepcopy(validate_document(doc))
            if doc.get("id") is None:
                doc["id"] = str(uuid.uuid4())
            pk = _pk(doc["id"])
            if pk in data.documents or pk in seen:
                raise DocumentExistsError(f"Duplicate primary key `id`: {doc['id']!r}")
            seen.add(pk)
            prepared.append(doc)

        for doc in prepared:
            self._write(data, doc["id"], doc)
        return [doc["id"] for doc in prepared]

    async def replace(self, db: str, table: str, documents: List[Dict[str, Any]]) -> List[Any]:
        await asyncio.sleep(0)
        data = self._table(db, table)
        self._require_existing(data, documents)

        for doc in documents:
            self._write(data, doc["id"], copy.deepcopy(doc))
        return [doc["id"] for doc in documents]

    async def update(self, db: str, table: str, documents: List[Dict[str, Any]]) -> List[Any]:
        await asyncio.sleep(0)
        data = self._table(db, table)
        self._require_existing(data, documents)

        for doc in documents:
            old = data.documents[_pk(doc["id"])]
            self._write(data, doc["id"], _merge(old, doc))
        return [doc["id"] for doc in documents]

    async def upsert(self, db: str, table: str, documents: List[Dict[str, Any]]) -> List[Any]:
        await asyncio.sleep(0)
        data = self._table(db, table)

        ids = []
        for doc in documents:
            doc = copy.deepcopy(validate_document(doc))
            if doc.get("id") is None:
                doc["id"] = str(uuid.uuid4())
            old = data.documents.get(_pk(doc["id"]))
            self._write(data, doc["id"], doc if old is None else _merge(old, doc))
            ids.append(doc["id"])
        return ids

    async def remove(self, db: str, table: str, ids: List[Any]) -> List[Any]:
        await asyncio.sleep(0)
        data = self._table(db, table)

        for id in ids:
            if _pk(id) in data.documents:
                self._write(data, id, None)
        return list(ids)

    def _require_existing(self, data: _TableData, documents: List[Dict[str, Any]]) -> None:
        for doc in documents:
            validate_document(doc, require_id=True)
            if _pk(doc["id"]) not in data.documents:
                raise DocumentMissingError(f"The document with id '{doc['id']}' was missing.")

    def _write(self, data: _TableData, id: Any, new: Optional[Dict[str, Any]]) -> None:
        pk = _pk(id)
        old = data.documents.get(pk)

        if new is None:
            data.documents.pop(pk, None)
        else:
            data.documents[pk] = new

        for query, cursor in list(data.feeds):
            if _feed_matches(query, old) or _feed_matches(query, new):
                cursor.push({
                    "old_val": copy.deepcopy(old),
                    "new_val": copy.deepcopy(new),
                })

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def save(self, path: Union[str, Path]) -> None:
        """Write every database to a msgpack snapshot."""
        snapshot = {
            db: {
                name: {
                    "indexes": {n: list(i.fields) for n, i in data.indexes.items()},
                    "documents": list(data.documents.values()),
                }
                for name, data in tables.items()
            }
            for db, tables in self._databases.items()
        }
        write_snapshot(path, snapshot)
        logger.info(f"Saved snapshot to {path}")

    def load(self, path: Union[str, Path]) -> None:
        """
        Replace all data with the contents of a snapshot.

        Loaded indexes are immediately ready.
        """
        snapshot = read_snapshot(path)

        databases: Dict[str, Dict[str, _TableData]] = {}
        for db, tables in snapshot.items():
            databases[db] = {}
            for name, contents in tables.items():
                data = _TableData()
                for index_name, fields in contents.get("indexes", {}).items():
                    index = _IndexData(fields=tuple(fields))
                    index.built.set()
                    data.indexes[index_name] = index
                for doc in contents.get("documents", []):
                    data.documents[_pk(doc["id"])] = doc
                databases[db][name] = data

        self._databases = databases
        logger.info(f"Loaded snapshot from {path}")

    def close(self) -> None:
        for tables in self._databases.values():
            for data in tables.values():
                for _, cursor in list(data.feeds):
                    cursor.close()
                for cursor in list(data.index_watchers):
                    cursor.close()
                for index in data.indexes.values():
                    if index.task is not None and not index.task.done():
                        index.task.cancel()


# =============================================================================
# HELPERS
# =============================================================================

def _pk(id: Any) -> Any:
    try:
        return sort_key(id)
    except TypeError:
        raise ValidationError(f"Invalid primary key: {id!r}")


def _index_key(doc: Dict[str, Any], rng: RangeQuery) -> Any:
    if rng.index == PRIMARY_INDEX_NAME:
        return doc["id"]

    values = []
    for f in rng.fields:
        if f not in doc:
            return _MISSING
        values.append(doc[f])
    return values


def _in_range(key: Any, rng: RangeQuery) -> bool:
    k = sort_key(key)
    lower = sort_key(rng.lower)
    upper = sort_key(rng.upper)

    if k < lower or (k == lower and rng.left_bound is BoundMode.OPEN):
        return False
    if k > upper or (k == upper and rng.right_bound is BoundMode.OPEN):
        return False
    return True


def _feed_matches(query: Query, doc: Optional[Dict[str, Any]]) -> bool:
    if doc is None:
        return False
    for rng in query.ranges:
        key = _index_key(doc, rng)
        if key is not _MISSING and _in_range(key, rng):
            return True
    return False


def _merge(old: Dict[str, Any], new: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``new`` into a copy of ``old``."""
    merged = copy.deepcopy(old)
    for key, value in new.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _discard(items: list, item: Any) -> None:
    try:
        items.remove(item)
    except ValueError:
        pass


def _discard_feed(feeds: List[Tuple[Query, MemoryCursor]], cursor: MemoryCursor) -> None:
    feeds[:] = [f for f in feeds if f[1] is not cursor]
