"""
Request option parsing for Fusion.

Validates the ``options`` object of client requests with pydantic and
converts schema failures into Fusion ValidationErrors, so nothing
malformed ever reaches the planner.

Query options:

    {
        "collection": "posts",
        "find": {"id": 4},                        # single document
        "find_all": [{"owner": "ann"}, ...],      # union of predicates
        "order": [["score"], "descending"],
        "above": [{"score": 10}, "open"],
        "below": [{"score": 20}, "closed"],
        "limit": 5
    }
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from ..core.exceptions import ValidationError
from ..storage.base import BoundMode, OrderDirection


Predicate = Annotated[Dict[str, Any], Field(min_length=1)]
FieldList = Annotated[List[str], Field(min_length=1)]


class QueryOptions(BaseModel):
    """Validated options of a ``query`` or ``subscribe`` request."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    collection: Optional[str] = None
    find: Optional[Predicate] = None
    find_all: Optional[Annotated[List[Predicate], Field(min_length=1)]] = Field(
        default=None, alias="findAll"
    )
    order: Optional[Tuple[FieldList, OrderDirection]] = None
    above: Optional[Tuple[Predicate, BoundMode]] = None
    below: Optional[Tuple[Predicate, BoundMode]] = None
    limit: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _check_exclusive(self) -> "QueryOptions":
        if self.find is not None:
            for name in ("find_all", "order", "above", "below", "limit"):
                if getattr(self, name) is not None:
                    raise ValueError(f"\"{name}\" is not allowed")
        return self

    @property
    def order_fields(self) -> List[str]:
        """
        Fields that determine range bounds and ordering.

        An explicit ``order`` wins; otherwise the keys of ``above``, then
        of ``below``.
        """
        if self.order is not None:
            return list(self.order[0])
        if self.above is not None:
            return list(self.above[0])
        if self.below is not None:
            return list(self.below[0])
        return []


class WriteType(str, Enum):
    """Document write request types."""
    INSERT = "insert"
    REPLACE = "replace"
    UPDATE = "update"
    UPSERT = "upsert"
    REMOVE = "remove"


class WriteOptions(BaseModel):
    """Validated options of a write request."""

    model_config = ConfigDict(extra="forbid")

    collection: str = Field(..., min_length=1)
    data: Annotated[List[Dict[str, Any]], Field(min_length=1)]


def parse_query(raw: Any) -> QueryOptions:
    """
    Validate raw query options.

    Raises:
        ValidationError: Describing the first schema violation
    """
    if isinstance(raw, QueryOptions):
        return raw
    try:
        return QueryOptions.model_validate(raw)
    except PydanticValidationError as e:
        raise ValidationError(format_error(e))


def parse_write(raw: Any) -> WriteOptions:
    """
    Validate raw write options.

    Raises:
        ValidationError: Describing the first schema violation
    """
    if isinstance(raw, WriteOptions):
        return raw
    try:
        return WriteOptions.model_validate(raw)
    except PydanticValidationError as e:
        raise ValidationError(format_error(e))


def format_error(error: PydanticValidationError) -> str:
    """Render the first pydantic error as a single message."""
    first = error.errors()[0]
    message = first.get("msg", "invalid request")
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]

    location = ".".join(str(part) for part in first.get("loc", ()))
    if location:
        return f"\"{location}\": {message}"
    return message
