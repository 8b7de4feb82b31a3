"""
Query processing for Fusion.

Requests flow through parsing, planning, execution and streaming:

    >>> plan = make_query_plan({"find_all": [{"owner": "ann"}]}, table)
    >>> result = await executor.execute(plan)
    >>> async for frame in streamer.stream_results(result, request_id=1):
    ...     print(frame)
"""

from .parser import (
    QueryOptions,
    WriteOptions,
    WriteType,
    parse_query,
    parse_write,
)
from .planner import QueryPlan, make_query_plan
from .writes import WritePlan, make_write_plan
from .executor import (
    QueryExecutor,
    ExecutionResult,
    Materialized,
    Live,
)
from .streamer import (
    ResponseStreamer,
    as_result,
    complete_frame,
    error_frame,
)

__all__ = [
    # Parsing
    "QueryOptions",
    "WriteOptions",
    "WriteType",
    "parse_query",
    "parse_write",
    # Planning
    "QueryPlan",
    "make_query_plan",
    "WritePlan",
    "make_write_plan",
    # Execution
    "QueryExecutor",
    "ExecutionResult",
    "Materialized",
    "Live",
    # Streaming
    "ResponseStreamer",
    "as_result",
    "complete_frame",
    "error_frame",
]
