"""
Admin Connection Hub

Holds the WebSocket connections of admin sessions subscribed to the
"admin" channel in this process and fans events out to them.
"""

import asyncio
import logging
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class AdminHub:
    """In-process registry of admin WebSocket connections."""

    def __init__(self):
        self._connections: set[WebSocket] = set()
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections.add(websocket)
        logger.info(f"👨‍💼 Admin joined ({self.connection_count} connected)")

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._connections.discard(websocket)
        logger.info(f"Admin left ({self.connection_count} connected)")

    async def broadcast(self, message: dict[str, Any]) -> int:
        """
        Send a message to every connected admin.

        Connections that fail are dropped. Returns the number of
        connections the message was delivered to.
        """
        async with self._lock:
            connections = list(self._connections)

        delivered = 0
        dead = []
        for websocket in connections:
            try:
                await websocket.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping admin connection after send failure: {e}")
                dead.append(websocket)

        if dead:
            async with self._lock:
                self._connections.difference_update(dead)

        return delivered
