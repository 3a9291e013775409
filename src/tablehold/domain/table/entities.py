from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Iterable

from tablehold.domain.common.ids import RestaurantId, TableId
from tablehold.domain.reservation.entities import ReservationStatus


class TableStatus(str, Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    OCCUPIED = "occupied"


@dataclass(frozen=True)
class Table:
    table_id: TableId
    restaurant_id: RestaurantId
    label: str
    capacity: int
    status: TableStatus
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.capacity < 1:
            raise ValueError("capacity must be >= 1")

    def fits(self, party_size: int) -> bool:
        return self.capacity >= party_size

    def with_status(self, status: TableStatus, now: datetime) -> Table:
        if status == self.status:
            return self
        return replace(self, status=status, updated_at=now)


def derive_table_status(statuses: Iterable[ReservationStatus]) -> TableStatus:
    """Table status is never stored independently of its reservations."""
    seen = set(statuses)
    if ReservationStatus.SEATED in seen:
        return TableStatus.OCCUPIED
    if ReservationStatus.CONFIRMED in seen:
        return TableStatus.RESERVED
    return TableStatus.AVAILABLE
