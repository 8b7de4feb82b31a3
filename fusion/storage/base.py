"""
Abstract base class for backing database adapters.

The gateway never talks to a database directly; it relies on the
capabilities described here:

- named tables (collections) with a reserved primary index
- secondary indexes built from an ordered field list
- a watch on each table's index set
- range queries over an index with independently open/closed bounds,
  optional ordering and a result-count limit
- one-shot execution or a live changefeed cursor
- waiting for a table or index to become query-ready
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# =============================================================================
# VALUE ORDERING
# =============================================================================

class _Sentinel:
    """A value ordered below or above every other value."""

    def __init__(self, name: str, rank: int):
        self._name = name
        self._rank = rank

    def __repr__(self) -> str:
        return self._name

    def __reduce__(self):
        return self._name


MINVAL = _Sentinel("MINVAL", 0)
MAXVAL = _Sentinel("MAXVAL", 9)

# Type ranks, lowest first
_ARRAY_RANK = 1
_BOOL_RANK = 2
_NULL_RANK = 3
_NUMBER_RANK = 4
_OBJECT_RANK = 5
_BINARY_RANK = 6
_STRING_RANK = 7


def sort_key(value: Any) -> Tuple:
    """
    Map a document value to a key that totally orders all values.

    Ordering across types is MINVAL < arrays < booleans < null < numbers
    < objects < binary < strings < MAXVAL; arrays compare element-wise,
    which is how compound index keys and bound vectors are compared.

    Raises:
        TypeError: For values that cannot appear in a JSON document
    """
    if isinstance(value, _Sentinel):
        return (value._rank,)
    if isinstance(value, (list, tuple)):
        return (_ARRAY_RANK, tuple(sort_key(v) for v in value))
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return (_BOOL_RANK, value)
    if value is None:
        return (_NULL_RANK,)
    if isinstance(value, (int, float)):
        return (_NUMBER_RANK, value)
    if isinstance(value, dict):
        return (
            _OBJECT_RANK,
            tuple(sorted((k, sort_key(v)) for k, v in value.items())),
        )
    if isinstance(value, (bytes, bytearray)):
        return (_BINARY_RANK, bytes(value))
    if isinstance(value, str):
        return (_STRING_RANK, value)
    raise TypeError(f"Unorderable value of type {type(value).__name__}")


# =============================================================================
# QUERY VOCABULARY
# =============================================================================

class BoundMode(str, Enum):
    """Whether a range edge includes its bound value."""
    OPEN = "open"
    CLOSED = "closed"


class OrderDirection(str, Enum):
    """Output ordering along an index."""
    ASCENDING = "ascending"
    DESCENDING = "descending"


@dataclass
class RangeQuery:
    """
    A range scan over one index.

    For the primary index the bounds are scalar ids; for secondary
    indexes they are lists with one value per index field.
    """

    index: str
    fields: Tuple[str, ...]
    lower: Any = MINVAL
    upper: Any = MAXVAL
    left_bound: BoundMode = BoundMode.CLOSED
    right_bound: BoundMode = BoundMode.CLOSED
    order: Optional[OrderDirection] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "index": self.index,
            "fields": list(self.fields),
            "lower": _describe(self.lower),
            "upper": _describe(self.upper),
            "left_bound": self.left_bound.value,
            "right_bound": self.right_bound.value,
            "order": self.order.value if self.order else None,
        }


@dataclass
class Query:
    """
    An executable query: the union of one or more range scans, optionally
    limited. Duplicates across ranges are not removed.
    """

    table: str
    ranges: List[RangeQuery] = field(default_factory=list)
    limit: Optional[int] = None


def _describe(value: Any) -> Any:
    if isinstance(value, _Sentinel):
        return repr(value)
    if isinstance(value, (list, tuple)):
        return [_describe(v) for v in value]
    return value


# =============================================================================
# CURSORS
# =============================================================================

class Cursor(ABC):
    """
    A live, incrementally-producing query result.

    Iterate with ``async for``; iteration ends when the cursor is
    exhausted or closed, and raises if the feed fails.
    """

    def __aiter__(self) -> "Cursor":
        return self

    @abstractmethod
    async def __anext__(self) -> Any:
        pass

    @abstractmethod
    def close(self) -> None:
        """Stop producing items. Safe to call more than once."""
        pass

    @property
    @abstractmethod
    def closed(self) -> bool:
        pass


# =============================================================================
# BACKEND
# =============================================================================

class Backend(ABC):
    """
    Capability contract required from the backing database.

    All methods are coroutines except the two that return cursors,
    which must not block.
    """

    # --- Tables ---

    @abstractmethod
    async def list_tables(self, db: str) -> List[str]:
        pass

    @abstractmethod
    async def create_table(self, db: str, table: str) -> None:
        """
        Raises:
            TableExistsError: If the table already exists
        """
        pass

    @abstractmethod
    async def drop_table(self, db: str, table: str) -> None:
        """
        Raises:
            TableNotFoundError: If the table does not exist
        """
        pass

    @abstractmethod
    async def wait_table_ready(self, db: str, table: str) -> None:
        """
        Wait for all replicas of a table to be available.

        Raises:
            TableNotFoundError: If the table does not exist
        """
        pass

    # --- Indexes ---

    @abstractmethod
    async def create_index(self, db: str, table: str, name: str, fields: List[str]) -> None:
        """
        Start building a secondary index over ``fields`` in order.

        Raises:
            IndexAlreadyExistsError: If an index with this name exists
        """
        pass

    @abstractmethod
    async def drop_index(self, db: str, table: str, name: str) -> None:
        pass

    @abstractmethod
    async def wait_index_ready(self, db: str, table: str, name: str) -> None:
        """
        Wait for an index to finish building.

        Raises:
            IndexNotFoundError: If the index does not exist or is dropped
        """
        pass

    @abstractmethod
    def watch_indexes(self, db: str, table: str) -> Cursor:
        """
        Watch a table's index set.

        The cursor yields the full list of secondary index names, first
        immediately and then after every change. The primary index is
        never included.
        """
        pass

    # --- Reads ---

    @abstractmethod
    async def run(self, db: str, query: Query) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def changes(self, db: str, query: Query) -> Cursor:
        """
        Open a changefeed over ``query``.

        The feed yields ``{"new_val": doc}`` for every document currently
        matching, then ``{"old_val": ..., "new_val": ...}`` for each write
        that affects a matching document.
        """
        pass

    # --- Writes ---

    @abstractmethod
    async def insert(self, db: str, table: str, documents: List[Dict[str, Any]]) -> List[Any]:
        pass

    @abstractmethod
    async def replace(self, db: str, table: str, documents: List[Dict[str, Any]]) -> List[Any]:
        pass

    @abstractmethod
    async def update(self, db: str, table: str, documents: List[Dict[str, Any]]) -> List[Any]:
        """
        Merge each document into the stored document with the same id.

        Raises:
            DocumentMissingError: If any target document does not exist
        """
        pass

    @abstractmethod
    async def upsert(self, db: str, table: str, documents: List[Dict[str, Any]]) -> List[Any]:
        pass

    @abstractmethod
    async def remove(self, db: str, table: str, ids: List[Any]) -> List[Any]:
        pass

    def close(self) -> None:
        """Release backend resources."""
        pass
