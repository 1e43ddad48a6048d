"""Live status push channel.

Observers connect to ``/ws`` and receive every broadcast event. A text
message of ``ping`` is answered with ``{"type": "pong"}``.
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from scheduler import WebSocketChannel

logger = logging.getLogger(__name__)

router = APIRouter(tags=["events"])


@router.websocket("/ws")
async def status_events(websocket: WebSocket) -> None:
    """Subscribe to schedule and progress events."""
    broadcaster = websocket.app.state.broadcaster
    await websocket.accept()

    channel = WebSocketChannel(
        websocket, asyncio.get_running_loop(), on_error=broadcaster.remove_channel
    )
    broadcaster.add_channel(channel)
    try:
        while True:
            message = await websocket.receive_text()
            if message.strip().lower() == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.remove_channel(channel)
