"""
Table (collection) metadata.

A Table owns the Index objects of one backing table, tracks whether the
table itself is available, and resolves predicate/order shapes to a
usable index.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Iterable, Optional, Sequence

from .exceptions import (
    IndexAlreadyExistsError,
    IndexExists,
    IndexMissing,
    IndexNotReady,
    LifecycleError,
    ValidationError,
)
from .index import Index, PRIMARY_INDEX_NAME, info_to_name
from .readiness import Readiness, ReadinessState, Waiter
from ..utils.logging import get_logger


logger = get_logger(__name__)


class Table:
    """
    Metadata for one collection's backing table.

    Construction schedules a check that the table exists and all its
    replicas are ready; until it completes the table is pending.

    Example:
        >>> table = Table("posts", "fusion", backend)
        >>> await table.wait_ready()
        >>> await table.create_index(["owner", "score"])
        >>> index = table.get_matching_index(["owner"], ["score"])
    """

    def __init__(self, name: str, db: str, backend=None):
        self.name = name
        self.db = db
        self.backend = backend

        # Set when the table is attached to a collection
        self.collection: Optional[str] = None

        self.indexes: Dict[str, Index] = {PRIMARY_INDEX_NAME: Index(PRIMARY_INDEX_NAME, name)}

        self._readiness = Readiness()
        self._task: Optional[asyncio.Task] = None
        self._closed = False

        if backend is not None:
            self._task = asyncio.get_running_loop().create_task(self._check())

    # =========================================================================
    # READINESS
    # =========================================================================

    @property
    def readiness(self) -> Readiness:
        return self._readiness

    @property
    def state(self) -> ReadinessState:
        return self._readiness.state

    @property
    def closed(self) -> bool:
        return self._closed

    def ready(self) -> bool:
        return self._readiness.is_ready

    def on_ready(self, callback: Waiter) -> None:
        """Invoke ``callback`` once the table is ready or has failed."""
        self._readiness.on_ready(callback)

    async def wait_ready(self) -> None:
        await self._readiness.wait()

    async def _check(self) -> None:
        try:
            await self.backend.wait_table_ready(self.db, self.name)
        except Exception as e:
            logger.warning(f"Table {self.name} failed to become ready: {e}")
            self._readiness.fail(e)
        else:
            logger.debug(f"Table {self.name} is ready")
            self._readiness.resolve()

    def close(self) -> None:
        """Fail every waiter on this table and close all of its indexes."""
        self._closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._readiness.fail(LifecycleError("collection deleted"))

        for index in self.indexes.values():
            index.close()
        self.indexes = {}

    # =========================================================================
    # INDEX RECONCILIATION
    # =========================================================================

    def update_indexes(self, index_names: Iterable[str]) -> None:
        """
        Replace the index map with a freshly discovered set of names.

        The primary index never appears in discovery results, so it is
        always added. A new Index takes over the pending waiters of the
        old Index with the same name; every old Index is then closed.
        """
        logger.debug(f"{self.name} indexes changed, reevaluating")

        names = list(index_names)
        if PRIMARY_INDEX_NAME not in names:
            names.append(PRIMARY_INDEX_NAME)

        new_indexes: Dict[str, Index] = {}
        for name in names:
            try:
                new_index = Index(name, self.name, self.db, self.backend)
            except ValidationError as e:
                logger.warning(f"{e}")
                continue

            old_index = self.indexes.get(name)
            if old_index is not None:
                new_index.readiness.adopt_waiters(old_index.readiness.take_waiters())
            new_indexes[name] = new_index

        old_indexes, self.indexes = self.indexes, new_indexes
        for index in old_indexes.values():
            index.close()

        logger.debug(f"{self.name} indexes updated")

    # =========================================================================
    # INDEX CREATION
    # =========================================================================

    async def create_index(self, fields: Sequence[str]) -> Index:
        """
        Create a secondary index over ``fields`` and wait until it is ready.

        A concurrent creation reported as "already exists" by the backing
        database counts as success.

        Raises:
            IndexExists: If the index is already tracked by this table
            StorageError: If the backing database rejects the creation
        """
        name = info_to_name({"fields": list(fields), "geo": False, "multi": None})
        if name in self.indexes:
            raise IndexExists(self.collection or self.name, fields)

        try:
            await self.backend.create_index(self.db, self.name, name, list(fields))
        except IndexAlreadyExistsError:
            logger.debug(f"Index {name} on {self.name} was created concurrently")

        # Track the index now so it is not created again before the
        # index watch reports it
        index = self.indexes.get(name)
        if index is None:
            index = Index(name, self.name, self.db, self.backend)
            self.indexes[name] = index

        # The index watch may replace the index while it builds
        while True:
            await index.wait_ready()
            current = self.indexes.get(name, index)
            if current is index or current.ready():
                return current
            index = current

    # =========================================================================
    # INDEX SELECTION
    # =========================================================================

    def get_matching_index(
        self,
        fuzzy_fields: Sequence[str],
        ordered_fields: Sequence[str],
    ) -> Index:
        """
        Find a ready index that can serve the given shape.

        A ready match wins over a pending one regardless of scan order.

        Raises:
            IndexNotReady: If the only matches are still building
            IndexMissing: If no index matches at all
            LifecycleError: If the table was closed
        """
        if self._closed:
            raise LifecycleError("collection deleted")

        if not fuzzy_fields and not ordered_fields:
            return self.indexes[PRIMARY_INDEX_NAME]

        pending: Optional[Index] = None
        for index in self.indexes.values():
            if index.is_match(fuzzy_fields, ordered_fields):
                if index.ready():
                    return index
                if pending is None:
                    pending = index

        collection = self.collection or self.name
        if pending is not None:
            raise IndexNotReady(collection, pending)
        raise IndexMissing(collection, list(fuzzy_fields) + list(ordered_fields))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.collection or self.name,
            "table": self.name,
            "state": self.state.value,
            "indexes": [i.to_dict() for i in self.indexes.values()],
        }

    def __repr__(self) -> str:
        return f"Table({self.name!r}, indexes={len(self.indexes)}, state={self.state.value})"
