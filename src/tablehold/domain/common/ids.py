from __future__ import annotations

from typing import NewType

RestaurantId = NewType("RestaurantId", str)
TableId = NewType("TableId", str)
ReservationId = NewType("ReservationId", str)
MenuItemId = NewType("MenuItemId", str)
OrderId = NewType("OrderId", str)
OrderItemId = NewType("OrderItemId", str)
UserId = NewType("UserId", str)
PaymentReference = NewType("PaymentReference", str)
