"""
Unit tests for response streaming.
"""

import asyncio
import pytest

from fusion.core.exceptions import ExecutionError, InternalError
from fusion.query.executor import Live, Materialized
from fusion.query.streamer import (
    ResponseStreamer,
    as_result,
    complete_frame,
    error_frame,
)
from fusion.storage.memory import MemoryCursor


async def collect(stream, limit: int = 100):
    frames = []
    async for frame in stream:
        frames.append(frame)
        if len(frames) >= limit:
            break
    return frames


class TestFrames:
    """Frame construction tests."""

    def test_complete_frame(self):
        """Test the terminal frame shape."""
        assert complete_frame() == {"data": [], "state": "complete"}
        assert complete_frame([1, 2]) == {"data": [1, 2], "state": "complete"}

    def test_error_frame(self):
        """Test the error frame shape."""
        assert error_frame(ValueError("bad")) == {"error": "bad"}
        assert error_frame("text") == {"error": "text"}


class TestAsResult:
    """Result normalization tests."""

    def test_list(self):
        """Test sequences become materialized results."""
        result = as_result([1, 2])
        assert isinstance(result, Materialized)
        assert result.items == [1, 2]

        assert as_result((3,)).items == [3]

    async def test_cursor(self):
        """Test cursors become live results."""
        cursor = MemoryCursor()
        result = as_result(cursor)

        assert isinstance(result, Live)
        assert result.cursor is cursor

    def test_tagged_passthrough(self):
        """Test tagged results are returned unchanged."""
        result = Materialized([1])
        assert as_result(result) is result

    @pytest.mark.parametrize("value", [None, 5, "text", {"a": 1}])
    def test_other_values(self, value):
        """Test anything else is an internal error."""
        with pytest.raises(InternalError, match="non-array, non-cursor"):
            as_result(value)


class TestStreamResults:
    """stream_results tests."""

    async def test_materialized_single_frame(self):
        """Test a materialized result yields one complete frame."""
        streamer = ResponseStreamer()
        frames = await collect(streamer.stream_results([{"id": 1}, {"id": 2}], 1))

        assert frames == [{"data": [{"id": 1}, {"id": 2}], "state": "complete"}]
        assert streamer.active_requests() == []

    async def test_empty_materialized(self):
        """Test an empty result still completes."""
        streamer = ResponseStreamer()
        frames = await collect(streamer.stream_results([], 1))

        assert frames == [{"data": [], "state": "complete"}]

    async def test_cursor_item_frames_then_complete(self):
        """Test a finite cursor yields one frame per item."""
        cursor = MemoryCursor()
        cursor.push({"new_val": 1})
        cursor.push({"new_val": 2})
        cursor.finish()

        streamer = ResponseStreamer()
        frames = await collect(streamer.stream_results(cursor, "r1"))

        assert frames == [
            {"data": [{"new_val": 1}]},
            {"data": [{"new_val": 2}]},
            {"data": [], "state": "complete"},
        ]
        assert streamer.active_requests() == []

    async def test_cursor_error_is_terminal(self):
        """Test a failing cursor ends with an error frame."""
        cursor = MemoryCursor()
        cursor.push({"new_val": 1})
        cursor.fail(ExecutionError("feed broke"))
        cursor.push({"new_val": 2})

        streamer = ResponseStreamer()
        frames = await collect(streamer.stream_results(cursor, 7))

        assert frames == [
            {"data": [{"new_val": 1}]},
            {"error": "feed broke"},
        ]
        assert streamer.active_requests() == []

    async def test_live_request_tracked(self):
        """Test an open cursor is tracked until cancelled."""
        cursor = MemoryCursor()
        cursor.push({"new_val": 1})

        streamer = ResponseStreamer()
        stream = streamer.stream_results(cursor, 3)

        assert await stream.__anext__() == {"data": [{"new_val": 1}]}
        assert streamer.active_requests() == [3]

        assert streamer.cancel_request(3) is True
        assert cursor.closed
        assert await collect(stream) == []
        assert streamer.active_requests() == []

    async def test_cancel_wakes_blocked_stream(self):
        """Test cancelling while the stream waits for an item."""
        cursor = MemoryCursor()
        streamer = ResponseStreamer()
        task = asyncio.create_task(collect(streamer.stream_results(cursor, 1)))

        await asyncio.sleep(0.01)
        assert streamer.active_requests() == [1]

        streamer.cancel_request(1)
        cursor.push({"new_val": "late"})

        assert await asyncio.wait_for(task, timeout=1) == []

    async def test_cancel_unknown_request(self):
        """Test cancelling without a live cursor is a no-op."""
        streamer = ResponseStreamer()
        assert streamer.cancel_request("nothing") is False

    async def test_close_all(self):
        """Test cancelling every live cursor."""
        first, second = MemoryCursor(), MemoryCursor()
        streamer = ResponseStreamer()
        streams = [
            streamer.stream_results(first, 1),
            streamer.stream_results(second, 2),
        ]
        tasks = [asyncio.create_task(collect(s)) for s in streams]
        await asyncio.sleep(0.01)

        streamer.close_all()

        assert await asyncio.wait_for(asyncio.gather(*tasks), timeout=1) == [[], []]
        assert first.closed and second.closed

    async def test_cancel_leaves_other_requests(self):
        """Test cancelling one request does not disturb another."""
        first, second = MemoryCursor(), MemoryCursor()
        streamer = ResponseStreamer()
        tasks = [
            asyncio.create_task(collect(streamer.stream_results(first, 1))),
            asyncio.create_task(collect(streamer.stream_results(second, 2))),
        ]
        await asyncio.sleep(0.01)

        assert streamer.cancel_request(1) is True
        assert streamer.active_requests() == [2]
        assert not second.closed

        second.push({"new_val": "kept"})
        second.finish()

        cancelled, kept = await asyncio.wait_for(asyncio.gather(*tasks), timeout=1)
        assert cancelled == []
        assert kept == [
            {"data": [{"new_val": "kept"}]},
            {"data": [], "state": "complete"},
        ]

    async def test_reused_request_id_replaces_cursor(self):
        """Test a new cursor for the same request id closes the old one."""
        old, new = MemoryCursor(), MemoryCursor()
        new.push({"new_val": 1})
        new.finish()
        streamer = ResponseStreamer()

        old_task = asyncio.create_task(collect(streamer.stream_results(old, 1)))
        await asyncio.sleep(0.01)

        frames = await collect(streamer.stream_results(new, 1))

        assert old.closed
        assert await asyncio.wait_for(old_task, timeout=1) == []
        assert frames[-1] == {"data": [], "state": "complete"}

    async def test_non_result_raises(self):
        """Test invalid results fail before any frame."""
        streamer = ResponseStreamer()
        with pytest.raises(InternalError):
            await collect(streamer.stream_results(42, 1))
