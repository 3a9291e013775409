"""Background reaper for stale reservation holds.

Each cycle runs under a cluster-wide advisory lock so that only one instance
sweeps at a time. Both passes are idempotent, so a cycle interrupted by a
crash is simply repeated on the next tick.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from tablehold.application.dto.responses import SweeperStatsResponse
from tablehold.application.metrics.lifecycle import record_sweeper_expired, record_sweeper_run
from tablehold.application.ports.locks import AdvisoryLock
from tablehold.application.ports.unit_of_work import UnitOfWorkFactory
from tablehold.application.services.notifications import (
    ADMIN_TOPIC,
    BROADCAST_RESTAURANT_ID,
    enqueue_event,
)
from tablehold.application.use_cases.context import NO_TRACE, Clock, TraceContext, utc_now
from tablehold.application.use_cases.reservation_lifecycle import refresh_table_status

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 300.0
SLOT_DECAY_AFTER = timedelta(hours=1)


@dataclass(frozen=True)
class SweepResult:
    expired_holds: list[str] = field(default_factory=list)
    decayed_slots: list[str] = field(default_factory=list)

    @property
    def expired_ids(self) -> list[str]:
        return [*self.expired_holds, *self.decayed_slots]


@dataclass
class _Stats:
    total_runs: int = 0
    total_expired: int = 0
    skipped_runs: int = 0
    errors: int = 0
    is_running: bool = False
    last_run_at: datetime | None = None
    last_duration_ms: float | None = None
    last_error: str | None = None


class ExpirationSweeper:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        lock: AdvisoryLock,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        decay_after: timedelta = SLOT_DECAY_AFTER,
        clock: Clock = utc_now,
        timer: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._uow_factory = uow_factory
        self._lock = lock
        self._interval_seconds = interval_seconds
        self._decay_after = decay_after
        self._clock = clock
        self._timer = timer
        self._stats = _Stats()
        self._stats_lock = threading.Lock()

    @property
    def interval_seconds(self) -> float:
        return self._interval_seconds

    def run_once(self, trace_ctx: TraceContext = NO_TRACE) -> SweepResult | None:
        with self._stats_lock:
            if self._stats.is_running:
                self._stats.skipped_runs += 1
                record_sweeper_run("skipped")
                return None
            self._stats.is_running = True

        started = self._timer()
        acquired = False
        try:
            acquired = self._lock.acquire()
            if not acquired:
                with self._stats_lock:
                    self._stats.skipped_runs += 1
                record_sweeper_run("skipped")
                logger.info("sweeper_cycle_skipped", extra={"reason": "lock_held"})
                return None

            now = self._clock()
            result = self._sweep(now, trace_ctx)
            duration = self._timer() - started
            with self._stats_lock:
                self._stats.total_runs += 1
                self._stats.total_expired += len(result.expired_ids)
                self._stats.last_run_at = now
                self._stats.last_duration_ms = round(duration * 1000, 3)
                self._stats.last_error = None
            record_sweeper_run("ok", duration)
            record_sweeper_expired("holds", len(result.expired_holds))
            record_sweeper_expired("slots", len(result.decayed_slots))
            logger.info(
                "sweeper_cycle_complete",
                extra={
                    "expired_holds": len(result.expired_holds),
                    "decayed_slots": len(result.decayed_slots),
                    "duration_ms": round(duration * 1000, 3),
                },
            )
            return result
        except Exception as exc:
            with self._stats_lock:
                self._stats.total_runs += 1
                self._stats.errors += 1
                self._stats.last_error = str(exc)
                self._stats.last_run_at = self._clock()
            record_sweeper_run("error", self._timer() - started)
            logger.exception("sweeper_cycle_failed")
            return None
        finally:
            if acquired:
                self._release()
            with self._stats_lock:
                self._stats.is_running = False

    def stats(self) -> SweeperStatsResponse:
        with self._stats_lock:
            snapshot = _Stats(**vars(self._stats))
        return SweeperStatsResponse(
            totalRuns=snapshot.total_runs,
            totalExpired=snapshot.total_expired,
            skippedRuns=snapshot.skipped_runs,
            errors=snapshot.errors,
            isRunning=snapshot.is_running,
            lastRunAt=snapshot.last_run_at,
            lastDurationMs=snapshot.last_duration_ms,
            lastError=snapshot.last_error,
            intervalSeconds=self._interval_seconds,
        )

    def _sweep(self, now: datetime, trace_ctx: TraceContext) -> SweepResult:
        with self._uow_factory() as uow:
            expired_holds = [str(item) for item in uow.reservations.expire_stale_holds()]
            decayed = uow.reservations.decay_past_slots(now - self._decay_after)
            for table_id in sorted({str(item.table_id) for item in decayed if item.table_id}):
                refresh_table_status(uow, table_id, now)

            result = SweepResult(
                expired_holds=expired_holds,
                decayed_slots=[str(item.reservation_id) for item in decayed],
            )
            if result.expired_ids:
                enqueue_event(
                    uow.outbox,
                    restaurant_id=BROADCAST_RESTAURANT_ID,
                    topic=ADMIN_TOPIC,
                    event_type="reservations-expired",
                    payload={
                        "count": len(result.expired_ids),
                        "ids": result.expired_ids,
                        "timestamp": now.isoformat(),
                    },
                    occurred_at=now,
                    trace_ctx=trace_ctx,
                )
            uow.commit()
        return result

    def _release(self) -> None:
        try:
            self._lock.release()
        except Exception:
            logger.exception("sweeper_lock_release_failed")
