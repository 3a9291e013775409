from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from tablehold.domain.common.ids import (
    MenuItemId,
    OrderId,
    OrderItemId,
    PaymentReference,
    ReservationId,
    RestaurantId,
    TableId,
)
from tablehold.domain.common.money import Money


class OrderStatus(str, Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OrderType(str, Enum):
    DINE_IN = "dine-in"
    PRE_ORDER = "pre-order"
    WALK_IN = "walk-in"
    TAKEOUT = "takeout"


ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TABLE_BOUND_ORDER_TYPES = frozenset({OrderType.DINE_IN, OrderType.WALK_IN})


@dataclass(frozen=True)
class OrderItem:
    """Line item with the catalog name and price frozen at commit time."""

    item_id: OrderItemId
    menu_item_id: MenuItemId
    name: str
    unit_price: Money
    quantity: int
    subtotal: Money
    special_instructions: str | None = None

    def __post_init__(self) -> None:
        if self.quantity < 1:
            raise ValueError("quantity must be >= 1")
        if self.unit_price.currency != self.subtotal.currency:
            raise ValueError("subtotal currency must match unit_price currency")
        if self.subtotal.amount_cents != self.unit_price.amount_cents * self.quantity:
            raise ValueError("subtotal must equal unit_price * quantity")


@dataclass(frozen=True)
class Order:
    order_id: OrderId
    restaurant_id: RestaurantId
    table_id: TableId | None
    reservation_id: ReservationId | None
    order_type: OrderType
    status: OrderStatus
    payment_reference: PaymentReference
    items: list[OrderItem]
    subtotal: Money
    tip: Money
    total: Money
    created_at: datetime
    customer_notes: str | None = None

    def __post_init__(self) -> None:
        if not self.items:
            raise ValueError("order must contain at least one item")
        currency = self.subtotal.currency
        if self.tip.currency != currency or self.total.currency != currency:
            raise ValueError("order amounts must share one currency")
        if any(item.subtotal.currency != currency for item in self.items):
            raise ValueError("item currency must match order currency")
        expected_subtotal = sum(item.subtotal.amount_cents for item in self.items)
        if self.subtotal.amount_cents != expected_subtotal:
            raise ValueError("order subtotal must equal sum of item subtotals")
        if self.total.amount_cents != self.subtotal.amount_cents + self.tip.amount_cents:
            raise ValueError("order total must equal subtotal + tip")

    def transition_to(self, target: OrderStatus) -> Order:
        if target not in ORDER_TRANSITIONS[self.status]:
            raise OrderTransitionError(
                f"cannot move order from status={self.status.value} to {target.value}"
            )
        return replace(self, status=target)


def create_pending_order(
    order_id: OrderId,
    restaurant_id: RestaurantId,
    table_id: TableId | None,
    reservation_id: ReservationId | None,
    order_type: OrderType,
    payment_reference: PaymentReference,
    items: list[OrderItem],
    tip: Money,
    now: datetime,
    customer_notes: str | None = None,
) -> Order:
    if not items:
        raise ValueError("order must contain at least one item")

    subtotal = Money.zero(tip.currency)
    for item in items:
        subtotal = subtotal.plus(item.subtotal)
    return Order(
        order_id=order_id,
        restaurant_id=restaurant_id,
        table_id=table_id,
        reservation_id=reservation_id,
        order_type=order_type,
        status=OrderStatus.PENDING,
        payment_reference=payment_reference,
        items=items,
        subtotal=subtotal,
        tip=tip,
        total=subtotal.plus(tip),
        created_at=now,
        customer_notes=customer_notes,
    )


class OrderTransitionError(Exception):
    pass
