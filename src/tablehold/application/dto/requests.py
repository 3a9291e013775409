from __future__ import annotations

from datetime import date, time

from pydantic import BaseModel, ConfigDict, Field


def _to_camel(value: str) -> str:
    parts = value.split("_")
    return parts[0] + "".join(part.capitalize() for part in parts[1:])


class CamelBaseModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=_to_camel,
        populate_by_name=True,
    )


class CreateReservationRequest(CamelBaseModel):
    restaurant_id: str
    table_id: str | None = None
    customer_name: str = Field(min_length=1)
    customer_phone: str | None = None
    customer_email: str | None = None
    party_size: int
    reservation_date: date
    reservation_time: time
    special_requests: str | None = None


class VerifyReservationRequest(CamelBaseModel):
    restaurant_id: str | None = None


class VerifyIntentRequest(CamelBaseModel):
    token: str | None = None


class ConfirmReservationRequest(CamelBaseModel):
    payment_reference: str = Field(min_length=1)
    restaurant_id: str | None = None


class UpdateStatusRequest(CamelBaseModel):
    status: str


class CartItemRequest(CamelBaseModel):
    menu_item_id: str
    quantity: int = Field(ge=1)
    special_instructions: str | None = None


class QuoteRequest(CamelBaseModel):
    restaurant_id: str
    items: list[CartItemRequest] = Field(min_length=1)
    tip_cents: int = Field(default=0, ge=0)


class CreatePaymentRequest(QuoteRequest):
    reservation_id: str | None = None
    reservation_intent: str | None = None
    metadata: dict[str, str] | None = None


class OrderDraftRequest(CamelBaseModel):
    restaurant_id: str
    order_type: str = "dine-in"
    table_id: str | None = None
    reservation_id: str | None = None
    items: list[CartItemRequest] = Field(min_length=1)
    tip_cents: int = Field(default=0, ge=0)
    customer_notes: str | None = None
    customer_email: str | None = None


class ConfirmPaymentRequest(CamelBaseModel):
    payment_reference: str = Field(min_length=1)
    reservation_id: str | None = None
    reservation_intent: str | None = None
    order: OrderDraftRequest | None = None


class RefundRequest(CamelBaseModel):
    payment_reference: str = Field(min_length=1)
    amount_cents: int | None = Field(default=None, ge=1)
    reason: str | None = None
    reservation_id: str | None = None
