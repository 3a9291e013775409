from __future__ import annotations

from tablehold.application.dto.requests import CartItemRequest
from tablehold.application.dto.responses import (
    PaymentHandleResponse,
    QuoteLineResponse,
    QuoteResponse,
)
from tablehold.application.mappers.order_mapper import to_money_response
from tablehold.application.services.payment_gateway import CartLine, CreatedPayment, Quote


def to_cart_lines(items: list[CartItemRequest]) -> list[CartLine]:
    return [
        CartLine(
            menu_item_id=item.menu_item_id,
            quantity=item.quantity,
            special_instructions=item.special_instructions,
        )
        for item in items
    ]


def to_quote_response(quote: Quote) -> QuoteResponse:
    return QuoteResponse(
        restaurantId=quote.restaurant_id,
        lines=[
            QuoteLineResponse(
                menuItemId=str(line.menu_item.item_id),
                name=line.menu_item.name,
                quantity=line.quantity,
                unitPrice=to_money_response(line.menu_item.price_money),
                subtotal=to_money_response(line.subtotal),
                specialInstructions=line.special_instructions,
            )
            for line in quote.lines
        ],
        subtotal=to_money_response(quote.subtotal),
        tip=to_money_response(quote.tip),
        total=to_money_response(quote.total),
        itemsHash=quote.items_hash,
    )


def to_payment_handle_response(created: CreatedPayment) -> PaymentHandleResponse:
    return PaymentHandleResponse(
        paymentReference=created.handle.payment_reference,
        clientSecret=created.handle.client_secret,
        amount=to_money_response(created.quote.total),
        itemsHash=created.quote.items_hash,
        reservationId=created.reservation_id,
    )
