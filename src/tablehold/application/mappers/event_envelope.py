from __future__ import annotations

import json
from datetime import datetime
from typing import Any
from uuid import uuid4

from tablehold.domain.common.money import Money
from tablehold.domain.order.entities import Order
from tablehold.domain.reservation.entities import Reservation


def serialize_event(
    *,
    event_type: str,
    occurred_at: datetime,
    restaurant_id: str,
    payload: dict[str, Any],
    trace_id: str | None,
    request_id: str | None,
) -> str:
    envelope = {
        "event_id": str(uuid4()),
        "event_type": event_type,
        "occurred_at": occurred_at.isoformat(),
        "request_id": request_id,
        "trace_id": trace_id,
        "restaurant_id": restaurant_id,
        "payload": payload,
    }
    return json.dumps(envelope, separators=(",", ":"), ensure_ascii=False)


def _money(value: Money) -> dict[str, Any]:
    return {"amountCents": value.amount_cents, "currency": value.currency}


def _optional_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def reservation_payload(reservation: Reservation) -> dict[str, Any]:
    return {
        "reservationId": str(reservation.reservation_id),
        "tableId": str(reservation.table_id) if reservation.table_id else None,
        "customerName": reservation.customer_name,
        "partySize": reservation.party_size,
        "reservationDate": reservation.reservation_date.isoformat(),
        "reservationTime": reservation.reservation_time.isoformat(),
        "status": reservation.status.value,
        "expiresAt": _optional_iso(reservation.expires_at),
        "arrivalTime": _optional_iso(reservation.arrival_time),
        "hasPreOrder": reservation.has_pre_order,
    }


def order_payload(order: Order) -> dict[str, Any]:
    return {
        "orderId": str(order.order_id),
        "tableId": str(order.table_id) if order.table_id else None,
        "reservationId": str(order.reservation_id) if order.reservation_id else None,
        "orderType": order.order_type.value,
        "status": order.status.value,
        "subtotal": _money(order.subtotal),
        "tip": _money(order.tip),
        "total": _money(order.total),
        "createdAt": order.created_at.isoformat(),
        "items": [
            {
                "itemId": str(item.item_id),
                "menuItemId": str(item.menu_item_id),
                "name": item.name,
                "quantity": item.quantity,
                "unitPrice": _money(item.unit_price),
                "subtotal": _money(item.subtotal),
                "specialInstructions": item.special_instructions,
            }
            for item in order.items
        ],
    }
