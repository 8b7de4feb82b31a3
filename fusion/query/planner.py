"""
Query planning for Fusion.

Translates validated query options into range scans over a table's
indexes. Planning is pure and synchronous: every validation failure is
raised before anything is sent to the backing database.

For each predicate map:

1. The ordering keys are the ``order`` fields, else the keys of
   ``above``, else the keys of ``below``.
2. A field may not be both an equality predicate and an ordering key,
   and ``above``/``below`` must include the first ordering key.
3. The table picks an index whose leading fields are the predicate
   fields followed by the ordering keys.
4. Each index field gets a lower and upper bound: the predicate value,
   else the ``above``/``below`` value, else a MINVAL/MAXVAL sentinel.

Several predicate maps (``find_all``) produce a union of scans.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union
import time

from .parser import QueryOptions, parse_query
from ..core.exceptions import ValidationError
from ..core.index import Index, PRIMARY_INDEX_FIELDS, PRIMARY_INDEX_NAME
from ..core.table import Table
from ..storage.base import (
    MAXVAL,
    MINVAL,
    BoundMode,
    Query,
    RangeQuery,
)


@dataclass
class QueryPlan:
    """
    Complete plan for one request.

    ``ranges`` holds one scan per predicate map; more than one scan
    means their results are unioned (duplicates are kept).
    """

    collection: str
    table: str
    ranges: List[RangeQuery] = field(default_factory=list)
    limit: Optional[int] = None

    # Planning stats
    planning_time_ms: float = 0.0

    @property
    def is_union(self) -> bool:
        return len(self.ranges) > 1

    def to_query(self) -> Query:
        """Build the backend query for this plan."""
        return Query(table=self.table, ranges=list(self.ranges), limit=self.limit)

    def explain(self) -> str:
        """Generate explain output."""
        lines = [
            "Query Plan",
            "=" * 40,
            f"Collection: {self.collection}",
            f"Limit: {self.limit if self.limit is not None else 'none'}",
            f"Planning Time: {self.planning_time_ms:.2f}ms",
            "",
            "Union:" if self.is_union else "Scan:",
            "-" * 40,
        ]
        for rng in self.ranges:
            described = rng.to_dict()
            left = "(" if rng.left_bound is BoundMode.OPEN else "["
            right = ")" if rng.right_bound is BoundMode.OPEN else "]"
            lines.append(
                f"  between {rng.index} {left}{described['lower']}, "
                f"{described['upper']}{right}"
                + (f" order {rng.order.value}" if rng.order else "")
            )
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "collection": self.collection,
            "table": self.table,
            "ranges": [r.to_dict() for r in self.ranges],
            "limit": self.limit,
            "planning_time_ms": self.planning_time_ms,
        }


def make_query_plan(options: Union[QueryOptions, Dict[str, Any]], table: Table) -> QueryPlan:
    """
    Plan a query against ``table``.

    Args:
        options: Query options, raw or already parsed
        table: Metadata of the collection being queried

    Returns:
        QueryPlan object

    Raises:
        ValidationError: If the options are malformed or contradictory
        IndexNotReady: If the only suitable index is still building
        IndexMissing: If no index can serve the query
    """
    start_time = time.time()
    options = parse_query(options)

    if options.find_all is not None:
        predicates = options.find_all
    elif options.find is not None:
        predicates = [options.find]
    else:
        predicates = [{}]

    ranges = [_plan_range(options, table, predicate) for predicate in predicates]

    return QueryPlan(
        collection=table.collection or table.name,
        table=table.name,
        ranges=ranges,
        limit=_plan_limit(options),
        planning_time_ms=(time.time() - start_time) * 1000,
    )


def _plan_range(options: QueryOptions, table: Table, predicate: Dict[str, Any]) -> RangeQuery:
    order_keys = options.order_fields

    if order_keys:
        first = order_keys[0]
        if options.above is not None and first not in options.above[0]:
            raise ValidationError(
                "\"above\" must be on the same field as the first in \"order\"."
            )
        if options.below is not None and first not in options.below[0]:
            raise ValidationError(
                "\"below\" must be on the same field as \"above\" and the first in \"order\"."
            )

    for key in order_keys:
        if key in predicate:
            raise ValidationError(
                f"\"{key}\" cannot be used in \"order\", \"above\", or \"below\" "
                "when finding by that field."
            )

    index = table.get_matching_index(list(predicate), order_keys)

    return RangeQuery(
        index=index.name,
        fields=index.fields,
        lower=_bound(index, predicate, options.above, is_above=True),
        upper=_bound(index, predicate, options.below, is_above=False),
        left_bound=options.above[1] if options.above is not None else BoundMode.CLOSED,
        right_bound=options.below[1] if options.below is not None else BoundMode.CLOSED,
        order=options.order[1] if options.order is not None else None,
    )


def _bound(
    index: Index,
    predicate: Dict[str, Any],
    bound: Optional[Tuple[Dict[str, Any], BoundMode]],
    is_above: bool,
) -> Any:
    def value_for(key: str) -> Any:
        if key in predicate:
            return predicate[key]
        if bound is not None and key in bound[0]:
            return bound[0][key]
        # An open edge must skip every value sharing the earlier fields
        if bound is not None and bound[1] is BoundMode.OPEN:
            return MAXVAL if is_above else MINVAL
        return MINVAL if is_above else MAXVAL

    if index.name == PRIMARY_INDEX_NAME:
        return value_for("id")
    return [value_for(key) for key in index.fields]


def _plan_limit(options: QueryOptions) -> Optional[int]:
    if _is_single_document(options):
        return 1 if options.limit is None else min(1, options.limit)
    return options.limit


def _is_single_document(options: QueryOptions) -> bool:
    if options.find is not None:
        return True
    # A lone primary-key lookup can match at most one document
    return (
        options.find_all is not None
        and len(options.find_all) == 1
        and set(options.find_all[0]) == set(PRIMARY_INDEX_FIELDS)
    )
