"""
Index metadata.

An Index mirrors one index of a backing table. Its name is a pure
function of the indexed fields and options, so the same request always
resolves to the same name and creation is idempotent.
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any, Dict, List, Optional, Sequence

from .exceptions import LifecycleError, ValidationError
from .readiness import Readiness, ReadinessState, Waiter
from ..utils.logging import get_logger
from ..utils.validation import validate_fields


logger = get_logger(__name__)

PRIMARY_INDEX_NAME = "id"
PRIMARY_INDEX_FIELDS = ("id",)

INDEX_PREFIX = "fusion_"

_MULTI_PATTERN = re.compile(r'^multi_(\d+)_')


def info_to_name(info: Dict[str, Any]) -> str:
    """
    Build the canonical name for an index.

    The name encodes ``{fields, geo, multi}``: the prefix, optional
    ``geo_`` and ``multi_<position>_`` markers, then the field list as a
    JSON array. Field order is significant.

    Example:
        >>> info_to_name({"fields": ["owner", "score"], "geo": False, "multi": None})
        'fusion_["owner","score"]'
    """
    fields = validate_fields(info["fields"])

    name = INDEX_PREFIX
    if info.get("geo"):
        name += "geo_"
    if info.get("multi") is not None:
        name += f"multi_{int(info['multi'])}_"
    return name + json.dumps(fields, separators=(",", ":"))


def name_to_info(name: str) -> Dict[str, Any]:
    """
    Parse an index name produced by info_to_name().

    Raises:
        ValidationError: If the name was not produced by info_to_name()
    """
    if name == PRIMARY_INDEX_NAME:
        return {"fields": list(PRIMARY_INDEX_FIELDS), "geo": False, "multi": None}

    if not name.startswith(INDEX_PREFIX):
        raise ValidationError(f"Unexpected index name (invalid prefix): \"{name}\"")

    rest = name[len(INDEX_PREFIX):]
    info: Dict[str, Any] = {"geo": False, "multi": None}

    if rest.startswith("geo_"):
        info["geo"] = True
        rest = rest[len("geo_"):]

    match = _MULTI_PATTERN.match(rest)
    if match:
        info["multi"] = int(match.group(1))
        rest = rest[match.end():]

    try:
        fields = json.loads(rest)
    except ValueError:
        raise ValidationError(f"Unexpected index name (invalid fields): \"{name}\"")

    if not isinstance(fields, list) or not all(isinstance(f, str) for f in fields):
        raise ValidationError(f"Unexpected index name (invalid fields): \"{name}\"")

    info["fields"] = fields
    return info


class Index:
    """
    One index of a table and its readiness.

    When constructed with a backend, an asynchronous readiness check is
    scheduled on the running loop; the constructor never blocks. The
    primary index is ready as soon as it exists.

    Example:
        >>> index = Index('fusion_["owner","score"]', "posts")
        >>> index.fields
        ('owner', 'score')
        >>> index.is_match(["owner"], ["score"])
        True
    """

    def __init__(
        self,
        name: str,
        table: str,
        db: Optional[str] = None,
        backend=None,
    ):
        info = name_to_info(name)

        # TODO: support geo and multi indexes
        if info["geo"] or info["multi"] is not None:
            raise ValidationError(f"Geo and multi indexes are not supported: \"{name}\"")

        self.name = name
        self.table = table
        self.fields = tuple(info["fields"])

        self._readiness = Readiness()
        self._task: Optional[asyncio.Task] = None
        self._closed = False

        if self.is_primary:
            self._readiness.resolve()
        elif backend is not None:
            self._task = asyncio.get_running_loop().create_task(
                self._check(backend, db)
            )

    @property
    def is_primary(self) -> bool:
        return self.name == PRIMARY_INDEX_NAME

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
        """Invoke ``callback`` once the index is ready or has failed."""
        self._readiness.on_ready(callback)

    async def wait_ready(self) -> None:
        await self._readiness.wait()

    def is_match(self, fuzzy_fields: Sequence[str], ordered_fields: Sequence[str]) -> bool:
        """
        Check whether this index can serve a predicate/order shape.

        ``fuzzy_fields`` (equality predicates) must occupy the leading
        positions of the index in any order; ``ordered_fields`` (range or
        order keys) must follow them exactly, in order. Trailing index
        fields are allowed and are scanned over their full range.
        """
        n_fuzzy = len(fuzzy_fields)

        for f in fuzzy_fields:
            try:
                position = self.fields.index(f)
            except ValueError:
                return False
            if position >= n_fuzzy:
                return False

        for i, f in enumerate(ordered_fields):
            position = n_fuzzy + i
            if position >= len(self.fields) or self.fields[position] != f:
                return False

        return True

    def close(self) -> None:
        """Stop checking readiness and fail any pending waiters."""
        self._closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._readiness.fail(LifecycleError("index deleted"))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "fields": list(self.fields),
            "primary": self.is_primary,
            "state": self.state.value,
        }

    def __repr__(self) -> str:
        return f"Index({self.name!r}, table={self.table!r}, state={self.state.value})"

    async def _check(self, backend, db: Optional[str]) -> None:
        try:
            await backend.wait_index_ready(db, self.table, self.name)
        except Exception as e:
            logger.debug(f"Index {self.name} on {self.table} failed: {e}")
            self._readiness.fail(e)
        else:
            self._readiness.resolve()
