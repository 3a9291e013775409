"""Fixed-buffer overlap test between reservation slots.

Two reservations on the same table and date conflict when their start times
are strictly less than ``buffer_minutes`` apart. Only reservations that hold
the table (confirmed or seated) can cause a conflict.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time
from typing import Iterable

from tablehold.domain.common.ids import ReservationId, TableId
from tablehold.domain.reservation.entities import TABLE_HOLDING_STATUSES, Reservation


@dataclass(frozen=True)
class Slot:
    table_id: TableId
    reservation_date: date
    reservation_time: time


def _seconds_of_day(value: time) -> int:
    return value.hour * 3600 + value.minute * 60 + value.second


def times_conflict(first: time, second: time, buffer_minutes: int) -> bool:
    if buffer_minutes <= 0:
        return False
    delta_seconds = abs(_seconds_of_day(first) - _seconds_of_day(second))
    return delta_seconds < buffer_minutes * 60


def find_conflicts(
    slot: Slot,
    existing: Iterable[Reservation],
    buffer_minutes: int,
    exclude_id: ReservationId | None = None,
) -> list[Reservation]:
    conflicts: list[Reservation] = []
    for reservation in existing:
        if exclude_id is not None and reservation.reservation_id == exclude_id:
            continue
        if reservation.status not in TABLE_HOLDING_STATUSES:
            continue
        if reservation.table_id != slot.table_id:
            continue
        if reservation.reservation_date != slot.reservation_date:
            continue
        if times_conflict(reservation.reservation_time, slot.reservation_time, buffer_minutes):
            conflicts.append(reservation)
    conflicts.sort(key=lambda item: (item.reservation_time, str(item.reservation_id)))
    return conflicts
