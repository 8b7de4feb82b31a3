"""
Request handling shared by every client connection.

The Gateway owns the collection registry and the executor for one server
instance. It turns validated client requests into execution results,
creating collections and indexes on demand in development mode.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional
import time

from .config import ServerConfig
from .models import RequestType
from ..core.exceptions import (
    IndexExists,
    IndexMissing,
    IndexNotReady,
    ValidationError,
)
from ..core.metadata import Metadata
from ..core.table import Table
from ..query.executor import ExecutionResult, QueryExecutor
from ..query.parser import parse_query
from ..query.planner import QueryPlan, make_query_plan
from ..query.writes import make_write_plan
from ..storage.base import Backend
from ..storage.memory import MemoryBackend
from ..utils.logging import get_logger


logger = get_logger(__name__)


class Gateway:
    """
    Server-wide request handler.

    Example:
        >>> gateway = Gateway(MemoryBackend(), ServerConfig(dev_mode=True))
        >>> await gateway.start()
        >>> result = await gateway.execute("query", {"collection": "posts"})
        >>> await gateway.stop()
    """

    def __init__(self, backend: Backend, config: Optional[ServerConfig] = None):
        self.backend = backend
        self.config = config or ServerConfig()

        self.metadata = Metadata(
            backend,
            db=self.config.db,
            auto_create_collection=self.config.auto_create_collection,
            auto_create_index=self.config.auto_create_index,
        )
        self.executor = QueryExecutor(backend, self.metadata.db)

        self._start_time = 0.0

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        snapshot = self._snapshot_path()
        if snapshot is not None and snapshot.exists():
            self.backend.load(snapshot)

        await self.metadata.start()
        self._start_time = time.time()
        logger.info(f"Gateway started on database {self.metadata.db}")

    async def stop(self) -> None:
        await self.metadata.stop()

        snapshot = self._snapshot_path()
        if snapshot is not None:
            self.backend.save(snapshot)

        self.backend.close()
        self._start_time = 0.0
        logger.info("Gateway stopped")

    @property
    def uptime(self) -> float:
        """Seconds since start, or 0 when not running."""
        if self._start_time == 0:
            return 0.0
        return time.time() - self._start_time

    def _snapshot_path(self) -> Optional[Path]:
        # Snapshots are a feature of the in-memory database only
        if not self.config.snapshot_path or not isinstance(self.backend, MemoryBackend):
            return None
        return Path(self.config.snapshot_path)

    # =========================================================================
    # REQUESTS
    # =========================================================================

    async def execute(self, request_type: RequestType, options: Dict[str, Any]) -> ExecutionResult:
        """
        Run one client request.

        Raises:
            FusionError: If the request cannot be planned or executed
        """
        request_type = RequestType(request_type)

        if request_type in (RequestType.QUERY, RequestType.SUBSCRIBE):
            plan = await self.plan_query(options)
            return await self.executor.execute(plan, live=request_type is RequestType.SUBSCRIBE)

        if request_type is RequestType.END_SUBSCRIPTION:
            raise ValidationError("\"end_subscription\" does not produce results")

        plan = make_write_plan(request_type.value, options)
        await self.get_table(plan.collection)
        return await self.executor.write(plan)

    async def plan_query(self, options: Any) -> QueryPlan:
        """
        Plan a query, waiting for indexes that are still building.

        When ``auto_create_index`` is enabled a missing index is created
        and the query is planned again.

        Raises:
            ValidationError: If the options are invalid
            IndexMissing: If no index serves the query and none is created
            IndexNotReady: If an index is still pending after waiting
        """
        options = parse_query(options)
        if not options.collection:
            raise ValidationError("\"collection\" is required")

        table = await self.get_table(options.collection)

        # Each predicate may need its own index, plus one retry per wait
        retries = 2 * len(options.find_all or [None])
        for _ in range(retries):
            try:
                return make_query_plan(options, table)
            except IndexNotReady as e:
                logger.debug(f"Waiting for {e.index.name} on {table.name}")
                await e.index.wait_ready()
            except IndexMissing as e:
                if not self.metadata.auto_create_index:
                    raise
                await self._create_index(table, e.fields)

        return make_query_plan(options, table)

    async def get_table(self, collection: str) -> Table:
        return await self.metadata.get_or_create_table(collection)

    async def _create_index(self, table: Table, fields) -> None:
        logger.info(f"Auto-creating index on {table.name}: {list(fields)}")
        try:
            await table.create_index(fields)
        except IndexExists:
            logger.debug(f"Index on {list(fields)} already exists for {table.name}")

