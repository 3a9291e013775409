"""Per-restaurant TTL cache for the two reservation tunables.

Lookups fall back from the restaurant row to the global row (NULL
restaurant) and then to configured defaults, field by field.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from tablehold.application.ports.repositories import ReservationSettingsRow, SettingsRepository

logger = logging.getLogger(__name__)

GLOBAL_SCOPE = "global"


@dataclass(frozen=True)
class ReservationSettings:
    hold_buffer_minutes: int
    cancellation_window_hours: int


@dataclass(frozen=True)
class _Entry:
    settings: ReservationSettings
    fetched_at: float


class SettingsCache:
    def __init__(
        self,
        repository: SettingsRepository,
        defaults: ReservationSettings,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._repository = repository
        self._defaults = defaults
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def get(self, restaurant_id: str | None) -> ReservationSettings:
        scope = str(restaurant_id) if restaurant_id else GLOBAL_SCOPE
        now = self._clock()
        with self._lock:
            entry = self._entries.get(scope)
            if entry is not None and now - entry.fetched_at < self._ttl_seconds:
                return entry.settings

        try:
            settings = self._load(restaurant_id)
        except Exception:
            logger.warning(
                "reservation_settings_lookup_failed",
                extra={"restaurant_id": restaurant_id},
                exc_info=True,
            )
            return self._defaults

        with self._lock:
            self._entries[scope] = _Entry(settings=settings, fetched_at=now)
        return settings

    def hold_buffer_minutes(self, restaurant_id: str | None) -> int:
        return self.get(restaurant_id).hold_buffer_minutes

    def cancellation_window_hours(self, restaurant_id: str | None) -> int:
        return self.get(restaurant_id).cancellation_window_hours

    def invalidate(self, restaurant_id: str | None = None) -> None:
        with self._lock:
            if restaurant_id is None:
                self._entries.clear()
            else:
                self._entries.pop(str(restaurant_id), None)

    def _load(self, restaurant_id: str | None) -> ReservationSettings:
        rows: list[ReservationSettingsRow] = []
        if restaurant_id:
            row = self._repository.get_reservation_settings(restaurant_id)
            if row is not None:
                rows.append(row)
        global_row = self._repository.get_reservation_settings(None)
        if global_row is not None:
            rows.append(global_row)

        buffer_minutes = next(
            (r.reservation_duration_minutes for r in rows if r.reservation_duration_minutes),
            self._defaults.hold_buffer_minutes,
        )
        window_hours = next(
            (
                r.cancellation_window_hours
                for r in rows
                if r.cancellation_window_hours is not None
            ),
            self._defaults.cancellation_window_hours,
        )
        return ReservationSettings(
            hold_buffer_minutes=int(buffer_minutes),
            cancellation_window_hours=int(window_hours),
        )
