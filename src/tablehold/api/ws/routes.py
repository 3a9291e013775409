from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from tablehold.api.ws.manager import ConnectionManager
from tablehold.application.services.notifications import ADMIN_TOPIC, KITCHEN_TOPIC

router = APIRouter()
logger = logging.getLogger(__name__)

TABLE_TOPIC_PREFIX = "table-"


def is_subscribable_topic(topic: str) -> bool:
    if topic in (KITCHEN_TOPIC, ADMIN_TOPIC):
        return True
    return topic.startswith(TABLE_TOPIC_PREFIX) and len(topic) > len(TABLE_TOPIC_PREFIX)


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """Push channel for kitchen, admin and per-table listeners.

    Query: ``restaurant_id`` (required) and ``topic`` (``kitchen``, ``admin`` or
    ``table-{table_id}``; defaults to ``admin``).
    """
    restaurant_id = websocket.query_params.get("restaurant_id")
    topic = websocket.query_params.get("topic", ADMIN_TOPIC)
    if not restaurant_id:
        await websocket.close(
            code=status.WS_1008_POLICY_VIOLATION,
            reason="restaurant_id query parameter is required",
        )
        return
    if not is_subscribable_topic(topic):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=f"unknown topic {topic}")
        return

    manager: ConnectionManager = websocket.app.state.ws_manager
    await manager.register(websocket=websocket, restaurant_id=restaurant_id, topic=topic)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("ws_connection_error", extra={"restaurant_id": restaurant_id})
    finally:
        await manager.unregister(websocket)
