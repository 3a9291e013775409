from __future__ import annotations

from tablehold.application.dto.responses import (
    MoneyResponse,
    OrderItemResponse,
    OrderResponse,
)
from tablehold.domain.common.money import Money
from tablehold.domain.order.entities import Order


def to_money_response(value: Money) -> MoneyResponse:
    return MoneyResponse(amountCents=value.amount_cents, currency=value.currency)


def to_order_response(order: Order) -> OrderResponse:
    return OrderResponse(
        orderId=str(order.order_id),
        restaurantId=str(order.restaurant_id),
        tableId=str(order.table_id) if order.table_id else None,
        reservationId=str(order.reservation_id) if order.reservation_id else None,
        orderType=order.order_type.value,
        status=order.status.value,
        paymentReference=str(order.payment_reference),
        items=[
            OrderItemResponse(
                itemId=str(item.item_id),
                menuItemId=str(item.menu_item_id),
                name=item.name,
                quantity=item.quantity,
                unitPrice=to_money_response(item.unit_price),
                subtotal=to_money_response(item.subtotal),
                specialInstructions=item.special_instructions,
            )
            for item in order.items
        ],
        subtotal=to_money_response(order.subtotal),
        tip=to_money_response(order.tip),
        total=to_money_response(order.total),
        customerNotes=order.customer_notes,
        createdAt=order.created_at,
    )
