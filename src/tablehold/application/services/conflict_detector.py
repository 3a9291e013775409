from __future__ import annotations

from tablehold.application.ports.repositories import ReservationRepository
from tablehold.application.services.settings_cache import SettingsCache
from tablehold.domain.common.ids import ReservationId
from tablehold.domain.reservation.conflicts import Slot, find_conflicts
from tablehold.domain.reservation.entities import Reservation


class ConflictDetector:
    """Answers whether a slot overlaps a confirmed or seated reservation on the same table."""

    def __init__(self, settings: SettingsCache) -> None:
        self._settings = settings

    def buffer_minutes(self, restaurant_id: str) -> int:
        return self._settings.hold_buffer_minutes(restaurant_id)

    def find(
        self,
        reservations: ReservationRepository,
        restaurant_id: str,
        slot: Slot,
        exclude_id: ReservationId | None = None,
    ) -> list[Reservation]:
        existing = reservations.list_holding_table(slot.table_id, slot.reservation_date)
        return find_conflicts(
            slot,
            existing,
            buffer_minutes=self.buffer_minutes(restaurant_id),
            exclude_id=exclude_id,
        )

    def first(
        self,
        reservations: ReservationRepository,
        restaurant_id: str,
        slot: Slot,
        exclude_id: ReservationId | None = None,
    ) -> Reservation | None:
        conflicts = self.find(reservations, restaurant_id, slot, exclude_id=exclude_id)
        return conflicts[0] if conflicts else None
