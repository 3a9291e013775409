from __future__ import annotations

import logging
import os
import time
from functools import lru_cache

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

DEFAULT_CHECKOUT_WARN_SECONDS = 5.0


def _database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set")
    return url


def install_checkout_watch(engine: Engine, warn_after_seconds: float) -> None:
    """Log a warning when a pooled connection is held longer than the threshold."""

    @event.listens_for(engine, "checkout")
    def _on_checkout(dbapi_connection, connection_record, connection_proxy) -> None:
        connection_record.info["checked_out_at"] = time.monotonic()

    @event.listens_for(engine, "checkin")
    def _on_checkin(dbapi_connection, connection_record) -> None:
        started = connection_record.info.pop("checked_out_at", None)
        if started is None:
            return
        held_seconds = time.monotonic() - started
        if held_seconds > warn_after_seconds:
            logger.warning(
                "db_connection_held_too_long",
                extra={
                    "held_ms": round(held_seconds * 1000, 1),
                    "threshold_ms": round(warn_after_seconds * 1000, 1),
                },
            )


@lru_cache(maxsize=8)
def _build_engine(database_url: str, connect_timeout: int, warn_after_seconds: float) -> Engine:
    engine = create_engine(
        database_url,
        pool_pre_ping=True,
        connect_args={"connect_timeout": connect_timeout},
    )
    install_checkout_watch(engine, warn_after_seconds)
    return engine


def get_engine(
    timeout_seconds: float = 1.0,
    warn_after_seconds: float = DEFAULT_CHECKOUT_WARN_SECONDS,
) -> Engine:
    connect_timeout = max(1, int(timeout_seconds))
    return _build_engine(_database_url(), connect_timeout, warn_after_seconds)


def ping_database(timeout_seconds: float = 1.0) -> bool:
    try:
        with get_engine(timeout_seconds).connect() as connection:
            connection.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
