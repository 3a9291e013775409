from __future__ import annotations

import logging
import os
from functools import lru_cache

import redis

logger = logging.getLogger(__name__)


def resolve_redis_url(redis_url: str | None = None) -> str:
    url = redis_url or os.getenv("REDIS_URL")
    if not url:
        raise RuntimeError("REDIS_URL is not set")
    return url


@lru_cache(maxsize=8)
def _build_client(redis_url: str, timeout_seconds: float) -> redis.Redis:
    return redis.Redis.from_url(
        redis_url,
        socket_connect_timeout=timeout_seconds,
        socket_timeout=timeout_seconds,
        health_check_interval=30,
    )


def get_redis_client(timeout_seconds: float = 1.0, redis_url: str | None = None) -> redis.Redis:
    """Shared client per (url, timeout); pub/sub and health checks reuse its pool."""
    return _build_client(resolve_redis_url(redis_url), timeout_seconds)


def ping_redis(timeout_seconds: float = 1.0) -> bool:
    try:
        return bool(get_redis_client(timeout_seconds).ping())
    except (redis.RedisError, RuntimeError) as exc:
        logger.warning("redis_ping_failed", extra={"error": str(exc)})
        return False
