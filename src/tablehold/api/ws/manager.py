from __future__ import annotations

import asyncio
import logging
from collections import defaultdict

from fastapi import WebSocket

from tablehold.application.services.notifications import BROADCAST_RESTAURANT_ID

logger = logging.getLogger(__name__)

Subscription = tuple[str, str]


class ConnectionManager:
    """WebSocket subscribers keyed by (restaurant_id, topic)."""

    def __init__(self) -> None:
        self._connections: dict[Subscription, set[WebSocket]] = defaultdict(set)
        self._socket_to_subscription: dict[WebSocket, Subscription] = {}
        self._lock = asyncio.Lock()

    async def register(self, websocket: WebSocket, restaurant_id: str, topic: str) -> None:
        await websocket.accept()
        key = (restaurant_id, topic)
        async with self._lock:
            self._connections[key].add(websocket)
            self._socket_to_subscription[websocket] = key
        logger.info(
            "ws_client_connected",
            extra={"restaurant_id": restaurant_id, "topic": topic},
        )

    async def unregister(self, websocket: WebSocket) -> None:
        async with self._lock:
            key = self._socket_to_subscription.pop(websocket, None)
            if key is None:
                return
            sockets = self._connections.get(key)
            if sockets is not None:
                sockets.discard(websocket)
                if not sockets:
                    self._connections.pop(key, None)
        logger.info(
            "ws_client_disconnected",
            extra={"restaurant_id": key[0], "topic": key[1]},
        )

    async def broadcast(self, restaurant_id: str, topic: str, message_json_str: str) -> None:
        async with self._lock:
            if restaurant_id == BROADCAST_RESTAURANT_ID:
                targets = [
                    websocket
                    for (_, subscribed_topic), sockets in self._connections.items()
                    if subscribed_topic == topic
                    for websocket in sockets
                ]
            else:
                targets = list(self._connections.get((restaurant_id, topic), set()))

        stale: list[WebSocket] = []
        for websocket in targets:
            try:
                await websocket.send_text(message_json_str)
            except Exception:
                stale.append(websocket)

        for websocket in stale:
            await self.unregister(websocket)

    def subscriber_count(self, restaurant_id: str, topic: str) -> int:
        return len(self._connections.get((restaurant_id, topic), ()))
