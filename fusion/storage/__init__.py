"""
Backing database adapters for Fusion.
"""

from .base import (
    Backend,
    Cursor,
    Query,
    RangeQuery,
    BoundMode,
    OrderDirection,
    MINVAL,
    MAXVAL,
    sort_key,
)
from .memory import MemoryBackend, MemoryCursor
from .serialization import (
    pack_snapshot,
    unpack_snapshot,
    write_snapshot,
    read_snapshot,
)

__all__ = [
    # Contract
    "Backend",
    "Cursor",
    "Query",
    "RangeQuery",
    "BoundMode",
    "OrderDirection",
    "MINVAL",
    "MAXVAL",
    "sort_key",
    # In-memory
    "MemoryBackend",
    "MemoryCursor",
    # Snapshots
    "pack_snapshot",
    "unpack_snapshot",
    "write_snapshot",
    "read_snapshot",
]
