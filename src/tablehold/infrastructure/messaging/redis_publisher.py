from __future__ import annotations

import logging

from tablehold.application.ports.publisher import EventPublisher
from tablehold.infrastructure.cache.redis_client import get_redis_client

logger = logging.getLogger(__name__)


class RedisEventPublisher(EventPublisher):
    """Fire-and-forget pub/sub; failures propagate so the outbox keeps the message."""

    def __init__(self, redis_url: str | None = None, timeout_seconds: float = 1.0) -> None:
        self._redis_url = redis_url
        self._timeout_seconds = timeout_seconds

    def publish(self, channel: str, message: str) -> None:
        client = get_redis_client(timeout_seconds=self._timeout_seconds, redis_url=self._redis_url)
        receivers = client.publish(channel, message)
        if not receivers:
            logger.debug("redis_publish_no_subscribers", extra={"channel": channel})
