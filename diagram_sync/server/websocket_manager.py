"""
WebSocket Manager - pushes session change events to connected editors.

Messages are small notifications, ``{"type": <event>, "revision": n}``;
clients fetch the actual text and graph via GET /api/diagram.
"""
from fastapi import WebSocket
from typing import Optional
import asyncio
import json
import logging

logger = logging.getLogger(__name__)

CONNECTED = "connected"


def encode_event(event: str, revision: Optional[int] = None) -> str:
    return json.dumps({"type": event, "revision": revision})


class WebSocketManager:
    """
    Pool of editor connections.

    A send that fails removes the connection; the client is expected to
    reconnect and resynchronize from the greeting's revision.
    """

    def __init__(self):
        self._connections: list[WebSocket] = []
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket, revision: Optional[int] = None):
        """Accept a connection and greet it with the current revision."""
        await websocket.accept()
        await websocket.send_text(encode_event(CONNECTED, revision))
        async with self._lock:
            self._connections.append(websocket)
        logger.info("Editor connected (%d open)", self.connection_count)

    async def disconnect(self, websocket: WebSocket):
        async with self._lock:
            if websocket in self._connections:
                self._connections.remove(websocket)
        logger.info("Editor disconnected (%d open)", self.connection_count)

    async def notify(self, event: str, revision: Optional[int] = None):
        """Send one change event to every connection."""
        async with self._lock:
            targets = list(self._connections)
        if not targets:
            return

        message = encode_event(event, revision)
        results = await asyncio.gather(
            *(websocket.send_text(message) for websocket in targets),
            return_exceptions=True,
        )

        stale = [ws for ws, result in zip(targets, results) if isinstance(result, Exception)]
        if stale:
            logger.debug("Dropping %d editor(s) after failed %s send", len(stale), event)
            async with self._lock:
                self._connections = [ws for ws in self._connections if ws not in stale]


# Global instance
ws_manager = WebSocketManager()
