"""
Collection registry.

Metadata owns one Table per collection for a server instance. It opens
tables for existing collections on start, keeps each table's index set in
sync with the backing database's index watch, and closes everything on
stop.
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

from .exceptions import (
    CollectionExistsError,
    CollectionNotFoundError,
    CollectionNotReadyError,
    TableExistsError,
    TableNotFoundError,
)
from .table import Table
from ..utils.logging import get_logger
from ..utils.validation import validate_name


logger = get_logger(__name__)


class Metadata:
    """
    Registry of collection metadata.

    Example:
        >>> metadata = Metadata(backend, db="fusion")
        >>> await metadata.start()
        >>> table = await metadata.create_collection("posts")
        >>> table = metadata.get_table("posts")
        >>> await metadata.stop()
    """

    def __init__(
        self,
        backend,
        db: str = "fusion",
        auto_create_collection: bool = False,
        auto_create_index: bool = False,
    ):
        self.backend = backend
        self.db = validate_name(db, kind="Database")
        self.auto_create_collection = auto_create_collection
        self.auto_create_index = auto_create_index

        self._tables: Dict[str, Table] = {}
        self._watchers: Dict[str, asyncio.Task] = {}
        # Set once a table has received its first index list
        self._synced: Dict[str, asyncio.Event] = {}
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        """Open every existing collection and wait for it to be ready."""
        names = await self.backend.list_tables(self.db)
        tables = [self._attach(name) for name in names]

        results = await asyncio.gather(
            *(table.wait_ready() for table in tables),
            return_exceptions=True,
        )
        for table, result in zip(tables, results):
            if isinstance(result, Exception):
                logger.warning(f"Collection {table.collection} is unavailable: {result}")
            else:
                await self._synced[table.name].wait()

        self._running = True
        logger.info(f"Metadata ready with {len(self._tables)} collections in {self.db}")

    async def stop(self) -> None:
        """Stop index watches and close every table."""
        self._running = False

        watchers = list(self._watchers.values())
        self._watchers.clear()
        for task in watchers:
            task.cancel()
        await asyncio.gather(*watchers, return_exceptions=True)

        for table in self._tables.values():
            table.close()
        self._tables.clear()
        self._synced.clear()

    # =========================================================================
    # COLLECTIONS
    # =========================================================================

    def list_collections(self) -> List[str]:
        return sorted(self._tables)

    def get_table(self, name: str) -> Table:
        """
        Get the metadata of a ready collection.

        Raises:
            CollectionNotFoundError: If the collection is unknown
            CollectionNotReadyError: If the collection is still pending
        """
        table = self._tables.get(name)
        if table is None:
            raise CollectionNotFoundError(name)
        if not table.ready():
            raise CollectionNotReadyError(name)
        return table

    def find_table(self, name: str) -> Optional[Table]:
        """Get a collection's metadata in any state, or None."""
        return self._tables.get(name)

    async def get_or_create_table(self, name: str) -> Table:
        """
        Get a collection, waiting for it to become ready.

        Unknown collections are created when ``auto_create_collection``
        is enabled.

        Raises:
            CollectionNotFoundError: If the collection is unknown and
                cannot be created
        """
        table = self._tables.get(name)
        if table is None:
            if not self.auto_create_collection:
                raise CollectionNotFoundError(name)
            return await self.create_collection(name, exist_ok=True)

        await table.wait_ready()
        return table

    async def create_collection(self, name: str, exist_ok: bool = False) -> Table:
        """
        Create a collection and wait until it is ready.

        Raises:
            CollectionExistsError: If the collection exists and not exist_ok
        """
        name = validate_name(name)
        if name in self._tables and not exist_ok:
            raise CollectionExistsError(name)

        try:
            await self.backend.create_table(self.db, name)
            logger.info(f"Created collection {name}")
        except TableExistsError:
            # Created concurrently or out-of-band
            if not exist_ok and name in self._tables:
                raise CollectionExistsError(name)

        table = self._tables.get(name)
        if table is None:
            table = self._attach(name)

        await table.wait_ready()
        await self._synced[name].wait()
        return table

    async def drop_collection(self, name: str) -> None:
        """
        Drop a collection.

        Every waiter on the collection and its indexes fails with a
        LifecycleError.

        Raises:
            CollectionNotFoundError: If the collection is unknown
        """
        table = self._tables.pop(name, None)
        if table is None:
            raise CollectionNotFoundError(name)

        self._stop_watch(name)
        table.close()
        self._synced.pop(name, None)

        try:
            await self.backend.drop_table(self.db, name)
        except TableNotFoundError:
            logger.debug(f"Table {name} was already dropped")
        logger.info(f"Dropped collection {name}")

    # =========================================================================
    # INDEX WATCH
    # =========================================================================

    def _attach(self, name: str) -> Table:
        table = Table(name, self.db, self.backend)
        table.collection = name
        self._tables[name] = table
        self._synced[name] = asyncio.Event()
        self._watchers[name] = asyncio.get_running_loop().create_task(self._watch(table))
        return table

    def _stop_watch(self, name: str) -> None:
        task = self._watchers.pop(name, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def _mark_synced(self, name: str) -> None:
        event = self._synced.get(name)
        if event is not None:
            event.set()

    async def _watch(self, table: Table) -> None:
        try:
            await table.wait_ready()
            cursor = self.backend.watch_indexes(self.db, table.name)
        except Exception as e:
            logger.warning(f"Cannot watch indexes of {table.name}: {e}")
            self._mark_synced(table.name)
            return

        try:
            async for index_names in cursor:
                if table.closed:
                    return
                table.update_indexes(index_names)
                self._mark_synced(table.name)
        except Exception as e:
            logger.warning(f"Index watch for {table.name} failed: {e}")
            return
        finally:
            cursor.close()
            self._mark_synced(table.name)

        # The watch only ends on its own when the table was dropped
        # out-of-band
        if not table.closed and self._tables.get(table.name) is table:
            logger.info(f"Collection {table.name} was removed")
            del self._tables[table.name]
            self._watchers.pop(table.name, None)
            self._synced.pop(table.name, None)
            table.close()
