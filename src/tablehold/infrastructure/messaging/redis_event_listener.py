from __future__ import annotations

import asyncio
import logging
from typing import Any

from redis import asyncio as redis_asyncio

logger = logging.getLogger(__name__)

CHANNEL_PATTERN = "events:*"


def _decode_value(value: bytes | str | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


def parse_channel(channel: str) -> tuple[str, str] | None:
    """Split ``events:{restaurant_id}:{topic}`` into its parts."""
    prefix, _, rest = channel.partition(":")
    restaurant_id, _, topic = rest.partition(":")
    if prefix != "events" or not restaurant_id or not topic:
        return None
    return restaurant_id, topic


async def dispatch_message(manager: Any, message: dict[str, Any]) -> bool:
    """Forward one pub/sub message to the matching WebSocket subscribers."""
    channel = _decode_value(message.get("channel"))
    payload = _decode_value(message.get("data"))
    if not channel or not payload:
        return False

    parsed = parse_channel(channel)
    if parsed is None:
        logger.warning("redis_fanout_invalid_channel", extra={"channel": channel})
        return False

    restaurant_id, topic = parsed
    await manager.broadcast(restaurant_id=restaurant_id, topic=topic, message_json_str=payload)
    return True


async def start_redis_fanout(app_state: Any, redis_url: str | None) -> None:
    if not redis_url:
        logger.warning("redis_fanout_not_started", extra={"reason": "REDIS_URL missing"})
        return

    backoff_seconds = 1.0
    while True:
        client: redis_asyncio.Redis | None = None
        pubsub: redis_asyncio.client.PubSub | None = None
        try:
            client = redis_asyncio.from_url(redis_url)
            pubsub = client.pubsub()
            await pubsub.psubscribe(CHANNEL_PATTERN)
            logger.info("redis_fanout_subscribed", extra={"pattern": CHANNEL_PATTERN})
            backoff_seconds = 1.0

            while True:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if message is None:
                    await asyncio.sleep(0.05)
                    continue

                await dispatch_message(app_state.ws_manager, message)
        except asyncio.CancelledError:
            logger.info("redis_fanout_cancelled")
            raise
        except Exception:
            logger.exception(
                "redis_fanout_error",
                extra={"backoff_seconds": backoff_seconds},
            )
            await asyncio.sleep(backoff_seconds)
            backoff_seconds = min(backoff_seconds * 2, 5.0)
        finally:
            if pubsub is not None:
                await pubsub.aclose()
            if client is not None:
                await client.aclose()
