from __future__ import annotations

from datetime import date, datetime, time

from pydantic import BaseModel, Field


class MoneyResponse(BaseModel):
    amountCents: int
    currency: str


class ReservationResponse(BaseModel):
    reservationId: str
    restaurantId: str
    tableId: str | None = None
    userId: str | None = None
    customerName: str
    customerPhone: str | None = None
    customerEmail: str | None = None
    partySize: int
    reservationDate: date
    reservationTime: time
    specialRequests: str | None = None
    status: str
    expiresAt: datetime | None = None
    confirmedAt: datetime | None = None
    arrivalTime: datetime | None = None
    paymentReference: str | None = None
    hasPreOrder: bool = False
    kitchenNotified: bool = False
    createdAt: datetime
    updatedAt: datetime


class ReservationActionResponse(BaseModel):
    reservation: ReservationResponse
    alreadyConfirmed: bool = False


class ReservationListResponse(BaseModel):
    reservations: list[ReservationResponse] = Field(default_factory=list)


class ReservationIntentResponse(BaseModel):
    token: str
    restaurantId: str
    tableId: str | None = None
    partySize: int
    reservationDate: date
    reservationTime: time
    expiresAt: datetime


class QuoteLineResponse(BaseModel):
    menuItemId: str
    name: str
    quantity: int
    unitPrice: MoneyResponse
    subtotal: MoneyResponse
    specialInstructions: str | None = None


class QuoteResponse(BaseModel):
    restaurantId: str
    lines: list[QuoteLineResponse] = Field(default_factory=list)
    subtotal: MoneyResponse
    tip: MoneyResponse
    total: MoneyResponse
    itemsHash: str


class PaymentHandleResponse(BaseModel):
    paymentReference: str
    clientSecret: str | None = None
    amount: MoneyResponse
    itemsHash: str
    reservationId: str | None = None


class OrderItemResponse(BaseModel):
    itemId: str
    menuItemId: str
    name: str
    quantity: int
    unitPrice: MoneyResponse
    subtotal: MoneyResponse
    specialInstructions: str | None = None


class OrderResponse(BaseModel):
    orderId: str
    restaurantId: str
    tableId: str | None = None
    reservationId: str | None = None
    orderType: str
    status: str
    paymentReference: str
    items: list[OrderItemResponse] = Field(default_factory=list)
    subtotal: MoneyResponse
    tip: MoneyResponse
    total: MoneyResponse
    customerNotes: str | None = None
    createdAt: datetime


class OrderCommitResponse(BaseModel):
    order: OrderResponse
    created: bool


class PaymentConfirmationResponse(BaseModel):
    paymentReference: str
    paymentStatus: str
    verified: bool
    confirmedAt: datetime
    reservation: ReservationResponse | None = None
    order: OrderResponse | None = None
    alreadyConfirmed: bool = False
    created: bool | None = None


class WebhookAckResponse(BaseModel):
    received: bool = True
    eventType: str
    handled: bool


class RefundResponse(BaseModel):
    refundId: str
    paymentReference: str
    amount: MoneyResponse
    status: str
    reservation: ReservationResponse | None = None


class SweeperStatsResponse(BaseModel):
    totalRuns: int
    totalExpired: int
    skippedRuns: int
    errors: int
    isRunning: bool
    lastRunAt: datetime | None = None
    lastDurationMs: float | None = None
    lastError: str | None = None
    intervalSeconds: float
