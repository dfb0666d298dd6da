"""WebSocket channel that pushes device state to watching browsers."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from services.hub import ViewerHub
from services.relay import build_default_hub

logger = logging.getLogger(__name__)

JOIN_EVENT = "join-device"
LEAVE_EVENT = "leave-device"

router = APIRouter()


def get_hub() -> ViewerHub:
    return build_default_hub()


class WebSocketConnection:
    """Hub connection backed by a WebSocket.

    ``send`` may be called from any thread; messages are queued on the
    socket's event loop and written in order by :meth:`pump`.
    """

    def __init__(self, websocket: WebSocket, loop: asyncio.AbstractEventLoop) -> None:
        self.connection_id = uuid4().hex
        self._websocket = websocket
        self._loop = loop
        self._queue: asyncio.Queue[Optional[Dict[str, Any]]] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, event: str, data: Dict[str, Any]) -> None:
        if self._closed:
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, {"event": event, "data": data})

    async def pump(self) -> None:
        while True:
            message = await self._queue.get()
            if message is None:
                return
            try:
                await self._websocket.send_json(message)
            except (WebSocketDisconnect, RuntimeError, OSError):
                self._closed = True
                return

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)


def _dispatch(hub: ViewerHub, connection: WebSocketConnection, raw: Optional[str]) -> None:
    if raw is None:
        logger.warning(
            "Ignoring malformed viewer message",
            extra={"connection_id": connection.connection_id, "reason": "binary frame"},
        )
        return

    try:
        message = json.loads(raw)
    except json.JSONDecodeError:
        message = None

    device_id = message.get("deviceId") if isinstance(message, dict) else None
    event = message.get("event") if isinstance(message, dict) else None
    if not isinstance(device_id, str) or not device_id.strip():
        logger.warning(
            "Ignoring malformed viewer message",
            extra={"connection_id": connection.connection_id, "reason": "missing deviceId"},
        )
        return

    if event == JOIN_EVENT:
        hub.join(connection, device_id)
    elif event == LEAVE_EVENT:
        hub.leave(connection, device_id)
    else:
        logger.warning(
            "Ignoring unknown viewer event",
            extra={"connection_id": connection.connection_id, "reason": f"event={event!r}"},
        )


@router.websocket("/ws")
async def live_updates(websocket: WebSocket, hub: ViewerHub = Depends(get_hub)) -> None:
    await websocket.accept()
    connection = WebSocketConnection(websocket, asyncio.get_running_loop())
    sender = asyncio.create_task(connection.pump())
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            _dispatch(hub, connection, message.get("text"))
    except WebSocketDisconnect:
        pass
    finally:
        hub.close(connection)
        connection.close()
        sender.cancel()
        await asyncio.gather(sender, return_exceptions=True)
