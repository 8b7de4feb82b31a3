"""
Response streaming for Fusion.

Normalizes execution results into protocol frames. Exactly three frame
shapes are produced:

    {"data": [item]}                        one item of a live cursor
    {"data": [...], "state": "complete"}    terminal frame
    {"error": "message"}                    terminal failure

Live cursors are tracked per request id so that a later "stop" can close
them.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Dict, Hashable, List, Optional

from .executor import ExecutionResult, Live, Materialized
from ..core.exceptions import InternalError
from ..storage.base import Cursor
from ..utils.logging import get_logger


logger = get_logger(__name__)

Frame = Dict[str, Any]


def complete_frame(items: Optional[List[Any]] = None) -> Frame:
    return {"data": list(items or []), "state": "complete"}


def error_frame(error: Any) -> Frame:
    return {"error": f"{error}"}


def as_result(result: Any) -> ExecutionResult:
    """
    Coerce a raw outcome into a tagged execution result.

    Raises:
        InternalError: For anything that is neither a sequence nor a cursor
    """
    if isinstance(result, (Materialized, Live)):
        return result
    if isinstance(result, Cursor):
        return Live(result)
    if isinstance(result, (list, tuple)):
        return Materialized(list(result))
    raise InternalError("Query got a non-array, non-cursor result")


class ResponseStreamer:
    """
    Streams execution results as frames and owns the live cursors of one
    client connection.

    Example:
        >>> streamer = ResponseStreamer()
        >>> async for frame in streamer.stream_results(result, request_id=3):
        ...     await send({"request_id": 3, **frame})
        >>> streamer.cancel_request(3)
    """

    def __init__(self):
        self._cursors: Dict[Hashable, Cursor] = {}

    def active_requests(self) -> List[Hashable]:
        """Request ids that currently have a live cursor."""
        return list(self._cursors)

    async def stream_results(
        self,
        result: Any,
        request_id: Hashable,
    ) -> AsyncIterator[Frame]:
        """
        Yield the frames for one execution result.

        A materialized result produces a single complete frame. A live
        cursor produces one frame per item, then a complete frame when it
        is exhausted, or an error frame (and nothing after it) when it
        fails. A cancelled cursor produces no further frames.
        """
        result = as_result(result)

        if isinstance(result, Materialized):
            yield complete_frame(result.items)
            return

        cursor = result.cursor
        self._register(request_id, cursor)

        try:
            try:
                async for item in cursor:
                    if not self._owns(request_id, cursor):
                        return
                    yield {"data": [item]}
            except Exception as e:
                if self._owns(request_id, cursor):
                    logger.debug(f"Cursor for request {request_id} failed: {e}")
                    self._release(request_id)
                    yield error_frame(e)
                return

            if not self._owns(request_id, cursor):
                return
            self._release(request_id)
            yield complete_frame()
        finally:
            if self._owns(request_id, cursor):
                self._release(request_id)

    def cancel_request(self, request_id: Hashable) -> bool:
        """
        Stop the live cursor of a request.

        Safe to call at any time; a request without a live cursor is a
        no-op.

        Returns:
            True if a cursor was closed
        """
        cursor = self._cursors.pop(request_id, None)
        if cursor is None:
            return False
        cursor.close()
        logger.debug(f"Cancelled request {request_id}")
        return True

    def close_all(self) -> None:
        """Cancel every live cursor."""
        for request_id in list(self._cursors):
            self.cancel_request(request_id)

    def _register(self, request_id: Hashable, cursor: Cursor) -> None:
        previous = self._cursors.get(request_id)
        if previous is not None and previous is not cursor:
            self.cancel_request(request_id)
        self._cursors[request_id] = cursor

    def _owns(self, request_id: Hashable, cursor: Cursor) -> bool:
        return self._cursors.get(request_id) is cursor

    def _release(self, request_id: Hashable) -> None:
        cursor = self._cursors.pop(request_id, None)
        if cursor is not None:
            cursor.close()
