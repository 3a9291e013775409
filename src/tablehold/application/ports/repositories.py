from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Protocol

from tablehold.domain.common.ids import (
    MenuItemId,
    OrderId,
    PaymentReference,
    ReservationId,
    RestaurantId,
    TableId,
)
from tablehold.domain.menu.entities import MenuItem
from tablehold.domain.order.entities import Order, OrderStatus
from tablehold.domain.reservation.entities import Reservation, ReservationStatus
from tablehold.domain.table.entities import Table, TableStatus


class ReservationRepository(Protocol):
    def get(self, reservation_id: ReservationId) -> Reservation | None: ...

    def get_for_update(self, reservation_id: ReservationId) -> Reservation | None: ...

    def get_by_payment_reference(
        self, payment_reference: PaymentReference
    ) -> Reservation | None: ...

    def add(self, reservation: Reservation) -> None: ...

    def update(self, reservation: Reservation) -> None: ...

    def list_holding_table(
        self,
        table_id: TableId,
        reservation_date: date,
    ) -> list[Reservation]: ...

    def holding_statuses_for_table(self, table_id: TableId) -> list[ReservationStatus]: ...

    def list_for_restaurant(
        self,
        restaurant_id: RestaurantId,
        reservation_date: date | None,
        status: ReservationStatus | None,
    ) -> list[Reservation]: ...

    def expire_stale_holds(self) -> list[ReservationId]: ...

    def decay_past_slots(self, cutoff: datetime) -> list[Reservation]: ...


class TableRepository(Protocol):
    def get(self, table_id: TableId, restaurant_id: RestaurantId) -> Table | None: ...

    def get_for_update(self, table_id: TableId, restaurant_id: RestaurantId) -> Table | None: ...

    def set_status(self, table_id: TableId, status: TableStatus, now: datetime) -> None: ...


class OrderRepository(Protocol):
    def add(self, order: Order) -> None: ...

    def get(self, order_id: OrderId) -> Order | None: ...

    def get_for_update(self, order_id: OrderId) -> Order | None: ...

    def get_by_payment_reference(self, payment_reference: PaymentReference) -> Order | None: ...

    def find_pre_order(self, reservation_id: ReservationId) -> Order | None: ...

    def update_status(self, order_id: OrderId, status: OrderStatus, now: datetime) -> None: ...


class MenuRepository(Protocol):
    def get_items(
        self,
        restaurant_id: RestaurantId,
        item_ids: Iterable[MenuItemId],
    ) -> dict[MenuItemId, MenuItem]: ...


@dataclass(frozen=True)
class ReservationSettingsRow:
    reservation_duration_minutes: int | None
    cancellation_window_hours: int | None


class SettingsRepository(Protocol):
    def get_reservation_settings(
        self, restaurant_id: RestaurantId | None
    ) -> ReservationSettingsRow | None: ...


class DuplicatePaymentReferenceError(Exception):
    """Raised when the storage-level UNIQUE constraint on a payment reference fires."""

    def __init__(self, payment_reference: str) -> None:
        super().__init__(f"payment reference already used: {payment_reference}")
        self.payment_reference = payment_reference
