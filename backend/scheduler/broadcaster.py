"""Live status broadcaster.

Pushes schedule lifecycle and progress events to every connected
observer as JSON ``{type, data, timestamp}``. Observers that fail on send
are dropped. No history is kept.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Kinds of broadcast events."""

    SCHEDULE_UPDATE = "schedule_update"
    SCHEDULE_CREATED = "schedule_created"
    SCHEDULE_DELETED = "schedule_deleted"
    SCHEDULE_STARTED = "schedule_started"
    SCHEDULE_STOPPED = "schedule_stopped"
    PROGRESS_UPDATE = "progress_update"


class Channel(Protocol):
    """An observer connection."""

    def send(self, message: str) -> None: ...


class WebSocketChannel:
    """Adapts a FastAPI WebSocket to a thread-safe ``send``.

    Events are produced on worker threads while the socket lives on the
    server's event loop.
    """

    def __init__(
        self,
        websocket: WebSocket,
        loop: asyncio.AbstractEventLoop,
        send_timeout: float = 5.0,
        on_error: Any = None,
    ) -> None:
        self.websocket = websocket
        self.loop = loop
        self.send_timeout = send_timeout
        self._on_error = on_error

    def send(self, message: str) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self.loop:
            task = self.loop.create_task(self.websocket.send_text(message))
            task.add_done_callback(self._check_task)
            return

        future = asyncio.run_coroutine_threadsafe(
            self.websocket.send_text(message), self.loop
        )
        future.result(timeout=self.send_timeout)

    def _check_task(self, task: asyncio.Task) -> None:
        if task.cancelled() or task.exception() is None:
            return
        logger.warning(f"WebSocket send failed: {task.exception()}")
        if self._on_error is not None:
            self._on_error(self)


class StatusBroadcaster:
    """Fan-out of status events to connected channels."""

    def __init__(self) -> None:
        self._channels: set[Channel] = set()
        self._lock = threading.Lock()

    def add_channel(self, channel: Channel) -> None:
        with self._lock:
            self._channels.add(channel)
        logger.info(f"Observer connected ({self.connection_count} total)")

    def remove_channel(self, channel: Channel) -> None:
        with self._lock:
            self._channels.discard(channel)
        logger.info(f"Observer disconnected ({self.connection_count} total)")

    @property
    def connection_count(self) -> int:
        with self._lock:
            return len(self._channels)

    def broadcast(self, event_type: EventType | str, data: Any) -> int:
        """Send an event to every channel.

        Returns:
            Number of channels the event was delivered to
        """
        message = json.dumps(
            {
                "type": EventType(event_type).value,
                "data": data,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
            default=str,
        )

        with self._lock:
            channels = list(self._channels)

        delivered = 0
        for channel in channels:
            try:
                channel.send(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping observer after failed send: {e}")
                self.remove_channel(channel)
        return delivered

    def schedule_update(self, schedule: dict[str, Any]) -> int:
        return self.broadcast(EventType.SCHEDULE_UPDATE, schedule)

    def schedule_created(self, schedule: dict[str, Any]) -> int:
        return self.broadcast(EventType.SCHEDULE_CREATED, schedule)

    def schedule_deleted(self, schedule_id: str) -> int:
        return self.broadcast(EventType.SCHEDULE_DELETED, {"id": schedule_id})

    def schedule_started(self, schedule: dict[str, Any]) -> int:
        return self.broadcast(EventType.SCHEDULE_STARTED, schedule)

    def schedule_stopped(self, schedule: dict[str, Any]) -> int:
        return self.broadcast(EventType.SCHEDULE_STOPPED, schedule)

    def progress_update(
        self, schedule_id: str, progress: float, message: str | None = None
    ) -> int:
        return self.broadcast(
            EventType.PROGRESS_UPDATE,
            {"id": schedule_id, "progress": progress, "message": message},
        )
