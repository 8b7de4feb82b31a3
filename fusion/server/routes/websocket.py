"""
WebSocket endpoint for client requests.

Each message is a JSON object ``{request_id, type, options}``. Requests on
one connection run concurrently; every reply frame carries the
``request_id`` of the request it answers:

    {"request_id": 1, "data": [{"new_val": {...}}]}
    {"request_id": 1, "data": [], "state": "complete"}
    {"request_id": 2, "error": "..."}
"""

from __future__ import annotations

import asyncio
import json
from typing import Dict, Hashable, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError

from ..dependencies import check_api_key
from ..gateway import Gateway
from ..models import ClientRequest, RequestType
from ...core.exceptions import FusionError
from ...query.parser import format_error
from ...query.streamer import Frame, ResponseStreamer, error_frame
from ...utils.logging import get_logger

logger = get_logger("fusion.server")

# Policy violation
CLOSE_UNAUTHORIZED = 1008


class ClientConnection:
    """
    One client's WebSocket session.

    Owns the connection's ResponseStreamer and the tasks of its in-flight
    requests. Closing the connection cancels both.
    """

    def __init__(self, websocket: WebSocket, gateway: Gateway):
        self.websocket = websocket
        self.gateway = gateway
        self.streamer = ResponseStreamer()

        self._tasks: Dict[Hashable, asyncio.Task] = {}
        self._send_lock = asyncio.Lock()
        self._closed = False

    async def serve(self) -> None:
        """Receive requests until the client disconnects."""
        try:
            while True:
                text = await self.websocket.receive_text()
                await self._dispatch(text)
        except WebSocketDisconnect as e:
            logger.info(f"Client disconnected (code {e.code})")
        finally:
            self.close()

    def close(self) -> None:
        """Stop every live cursor and in-flight request."""
        self._closed = True
        self.streamer.close_all()
        for task in list(self._tasks.values()):
            task.cancel()
        self._tasks.clear()

    async def send(self, request_id: Optional[Hashable], frame: Frame) -> None:
        if self._closed:
            return
        async with self._send_lock:
            await self.websocket.send_json({"request_id": request_id, **frame})

    # =========================================================================
    # DISPATCH
    # =========================================================================

    async def _dispatch(self, text: str) -> None:
        try:
            raw = json.loads(text)
        except ValueError:
            await self.send(None, error_frame("Invalid JSON"))
            return

        try:
            request = ClientRequest.model_validate(raw)
        except PydanticValidationError as e:
            request_id = raw.get("request_id") if isinstance(raw, dict) else None
            await self.send(request_id, error_frame(format_error(e)))
            return

        request_id = request.request_id

        if request.type is RequestType.END_SUBSCRIPTION:
            self._end(request_id)
            return

        if request_id in self._tasks:
            await self.send(request_id, error_frame(
                f"Request {request_id} is already in progress"
            ))
            return

        task = asyncio.get_running_loop().create_task(self._run(request))
        self._tasks[request_id] = task
        task.add_done_callback(lambda t: self._forget(request_id, t))

    def _end(self, request_id: Hashable) -> None:
        # Cursor first so the running stream stops quietly
        self.streamer.cancel_request(request_id)
        task = self._tasks.pop(request_id, None)
        if task is not None:
            task.cancel()
        logger.debug(f"Ended subscription {request_id}")

    def _forget(self, request_id: Hashable, task: asyncio.Task) -> None:
        if self._tasks.get(request_id) is task:
            del self._tasks[request_id]

    async def _run(self, request: ClientRequest) -> None:
        request_id = request.request_id
        try:
            result = await self.gateway.execute(request.type, request.options)
            async for frame in self.streamer.stream_results(result, request_id):
                await self.send(request_id, frame)
        except FusionError as e:
            logger.debug(f"Request {request_id} failed: {e}")
            await self.send(request_id, error_frame(e))
        except WebSocketDisconnect:
            logger.debug(f"Client went away during request {request_id}")
        except Exception as e:
            logger.error(f"Unhandled error in request {request_id}: {e}", exc_info=True)
            await self.send(request_id, error_frame("Internal error"))


def _presented_key(websocket: WebSocket) -> Optional[str]:
    return websocket.headers.get("x-api-key") or websocket.query_params.get("token")


async def fusion_socket(websocket: WebSocket) -> None:
    """Serve one client connection."""
    config = websocket.app.state.config
    if not check_api_key(config, _presented_key(websocket)):
        logger.warning("Rejected WebSocket connection with a bad API key")
        await websocket.close(code=CLOSE_UNAUTHORIZED)
        return

    await websocket.accept()
    logger.info(
        f"Client connected from "
        f"{websocket.client.host if websocket.client else 'unknown'}"
    )

    connection = ClientConnection(websocket, websocket.app.state.gateway)
    await connection.serve()


def create_websocket_router(path: str) -> APIRouter:
    """Create the router serving client connections at ``path``."""
    router = APIRouter()
    router.add_api_websocket_route(path, fusion_socket)
    return router
