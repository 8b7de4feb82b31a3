"""
Query execution for Fusion.

Runs plans against the backing database. Execution produces a tagged
result: either a materialized list of documents or a live cursor, which
the response streamer consumes uniformly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Union
import time

from .planner import QueryPlan
from .parser import WriteType
from .writes import WritePlan
from ..core.exceptions import ExecutionError, StorageError
from ..storage.base import Backend, Cursor
from ..utils.logging import get_logger


logger = get_logger(__name__)


@dataclass
class Materialized:
    """A finite, already-computed result sequence."""
    items: List[Any] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.items)


@dataclass
class Live:
    """A live cursor that keeps producing items until exhausted or closed."""
    cursor: Cursor


ExecutionResult = Union[Materialized, Live]


class QueryExecutor:
    """
    Executes plans against a backend database.

    Backend failures are raised as ExecutionError so that callers can
    turn them into an error frame for the one request that caused them.

    Example:
        >>> executor = QueryExecutor(backend, db="fusion")
        >>> result = await executor.fetch(plan)
        >>> live = executor.subscribe(plan)
    """

    def __init__(self, backend: Backend, db: str):
        self.backend = backend
        self.db = db

    async def execute(self, plan: QueryPlan, live: bool = False) -> ExecutionResult:
        """Run ``plan`` once, or open a changefeed if ``live``."""
        if live:
            return self.subscribe(plan)
        return await self.fetch(plan)

    async def fetch(self, plan: QueryPlan) -> Materialized:
        start_time = time.time()
        try:
            items = await self.backend.run(self.db, plan.to_query())
        except StorageError as e:
            raise ExecutionError(str(e)) from e

        logger.debug(
            f"Fetched {len(items)} documents from {plan.table} "
            f"in {(time.time() - start_time) * 1000:.2f}ms"
        )
        return Materialized(items)

    def subscribe(self, plan: QueryPlan) -> Live:
        try:
            cursor = self.backend.changes(self.db, plan.to_query())
        except StorageError as e:
            raise ExecutionError(str(e)) from e
        return Live(cursor)

    async def write(self, plan: WritePlan) -> Materialized:
        """
        Apply a validated write.

        Returns:
            One ``{"id": ...}`` item per written document
        """
        table = plan.collection
        try:
            if plan.kind is WriteType.INSERT:
                ids = await self.backend.insert(self.db, table, plan.documents)
            elif plan.kind is WriteType.REPLACE:
                ids = await self.backend.replace(self.db, table, plan.documents)
            elif plan.kind is WriteType.UPDATE:
                ids = await self.backend.update(self.db, table, plan.documents)
            elif plan.kind is WriteType.UPSERT:
                ids = await self.backend.upsert(self.db, table, plan.documents)
            else:
                ids = await self.backend.remove(self.db, table, plan.ids)
        except StorageError as e:
            raise ExecutionError(str(e)) from e

        logger.debug(f"Applied {plan.kind.value} of {len(ids)} documents to {table}")
        return Materialized([{"id": id} for id in ids])
