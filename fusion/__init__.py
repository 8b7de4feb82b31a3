"""
Fusion - a realtime data gateway.

Clients send declarative queries over a WebSocket; Fusion validates them,
plans them against the indexes of a backing database, and streams the
results back, including live updates for subscriptions.

Example:
    >>> from fusion import Metadata, MemoryBackend, QueryExecutor, make_query_plan
    >>>
    >>> backend = MemoryBackend()
    >>> metadata = Metadata(backend, db="fusion")
    >>> await metadata.start()
    >>> table = await metadata.create_collection("posts")
    >>> await table.create_index(["owner"])
    >>>
    >>> plan = make_query_plan({"find_all": [{"owner": "ann"}]}, table)
    >>> result = await QueryExecutor(backend, "fusion").execute(plan)
"""

from .core import (
    # Metadata
    Metadata,
    Table,
    Index,
    Readiness,
    ReadinessState,
    # Exceptions
    FusionError,
    ValidationError,
    InternalError,
    LifecycleError,
    ExecutionError,
    CollectionNotFoundError,
    CollectionExistsError,
    IndexMissing,
    IndexNotReady,
    IndexExists,
    StorageError,
)

from .storage import (
    Backend,
    Cursor,
    MemoryBackend,
)

from .query import (
    QueryExecutor,
    QueryPlan,
    ResponseStreamer,
    make_query_plan,
    make_write_plan,
)

__version__ = "0.1.0"
__author__ = "Fusion Team"

__all__ = [
    # Metadata
    "Metadata",
    "Table",
    "Index",
    "Readiness",
    "ReadinessState",
    # Storage
    "Backend",
    "Cursor",
    "MemoryBackend",
    # Query
    "QueryExecutor",
    "QueryPlan",
    "ResponseStreamer",
    "make_query_plan",
    "make_write_plan",
    # Exceptions
    "FusionError",
    "ValidationError",
    "InternalError",
    "LifecycleError",
    "ExecutionError",
    "CollectionNotFoundError",
    "CollectionExistsError",
    "IndexMissing",
    "IndexNotReady",
    "IndexExists",
    "StorageError",
]
