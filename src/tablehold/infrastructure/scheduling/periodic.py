from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)


async def run_periodically(
    name: str,
    interval_seconds: float,
    job: Callable[[], Any],
    run_immediately: bool = True,
) -> None:
    """Run a blocking job on a worker thread every ``interval_seconds``.

    A failing tick is logged and the loop carries on with the next one.
    """
    if not run_immediately:
        await asyncio.sleep(interval_seconds)
    while True:
        try:
            await asyncio.to_thread(job)
        except asyncio.CancelledError:
            logger.info("periodic_job_cancelled", extra={"job": name})
            raise
        except Exception:
            logger.exception("periodic_job_failed", extra={"job": name})
        await asyncio.sleep(interval_seconds)
