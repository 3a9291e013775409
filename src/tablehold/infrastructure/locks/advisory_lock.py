from __future__ import annotations

import logging

from sqlalchemy import Connection, Engine, text

logger = logging.getLogger(__name__)


class PostgresAdvisoryLock:
    """Session-level ``pg_try_advisory_lock`` held on a dedicated connection.

    The lock lives as long as the connection, so the connection is kept checked
    out between ``acquire`` and ``release``.
    """

    def __init__(self, engine: Engine, key: int) -> None:
        self._engine = engine
        self._key = key
        self._connection: Connection | None = None

    def acquire(self) -> bool:
        if self._connection is not None:
            return False
        connection = self._engine.connect()
        try:
            acquired = bool(
                connection.execute(
                    text("SELECT pg_try_advisory_lock(:key)"),
                    {"key": self._key},
                ).scalar()
            )
            connection.commit()
        except Exception:
            connection.close()
            raise
        if not acquired:
            connection.close()
            logger.info("advisory_lock_busy", extra={"lock_key": self._key})
            return False
        self._connection = connection
        return True

    def release(self) -> None:
        connection = self._connection
        if connection is None:
            return
        self._connection = None
        try:
            connection.execute(text("SELECT pg_advisory_unlock(:key)"), {"key": self._key})
            connection.commit()
        except Exception:
            logger.exception("advisory_lock_release_failed", extra={"lock_key": self._key})
        finally:
            connection.close()
