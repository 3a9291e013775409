from __future__ import annotations

from fastapi import APIRouter, Depends, Header, status

from tablehold.api.dependencies import Container, get_container
from tablehold.api.middleware.request_id import get_request_id
from tablehold.application.dto.requests import (
    ConfirmPaymentRequest,
    CreatePaymentRequest,
    QuoteRequest,
    RefundRequest,
)
from tablehold.application.dto.responses import (
    PaymentConfirmationResponse,
    PaymentHandleResponse,
    QuoteResponse,
    RefundResponse,
)
from tablehold.application.mappers.payment_mapper import (
    to_cart_lines,
    to_payment_handle_response,
    to_quote_response,
)
from tablehold.application.use_cases.commit_order import OrderDraft
from tablehold.domain.common.ids import UserId
from tablehold.infrastructure.observability.otel import current_trace_context

router = APIRouter()


@router.post("/v1/payments/quote", response_model=QuoteResponse)
def quote_payment(
    request_dto: QuoteRequest,
    container: Container = Depends(get_container),
) -> QuoteResponse:
    quote = container.gateway.quote(
        request_dto.restaurant_id,
        to_cart_lines(request_dto.items),
        request_dto.tip_cents,
    )
    return to_quote_response(quote)


@router.post(
    "/v1/payments",
    response_model=PaymentHandleResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_payment(
    request_dto: CreatePaymentRequest,
    container: Container = Depends(get_container),
) -> PaymentHandleResponse:
    created = container.gateway.create_payment(
        request_dto.restaurant_id,
        to_cart_lines(request_dto.items),
        tip_cents=request_dto.tip_cents,
        reservation_id=request_dto.reservation_id,
        reservation_intent=request_dto.reservation_intent,
        metadata=request_dto.metadata,
    )
    return to_payment_handle_response(created)


@router.post("/v1/payments/confirm", response_model=PaymentConfirmationResponse)
def confirm_payment(
    request_dto: ConfirmPaymentRequest,
    x_user_id: str | None = Header(default=None),
    container: Container = Depends(get_container),
) -> PaymentConfirmationResponse:
    draft = OrderDraft.from_request(request_dto.order) if request_dto.order else None
    return container.confirm_payment.execute(
        request_dto.payment_reference,
        reservation_id=request_dto.reservation_id,
        reservation_intent=request_dto.reservation_intent,
        order=draft,
        actor=UserId(x_user_id) if x_user_id else None,
        trace_ctx=current_trace_context(get_request_id()),
    )


@router.post("/v1/payments/refund", response_model=RefundResponse)
def refund_payment(
    request_dto: RefundRequest,
    container: Container = Depends(get_container),
) -> RefundResponse:
    return container.refund_payment.execute(
        request_dto.payment_reference,
        amount_cents=request_dto.amount_cents,
        reason=request_dto.reason,
        reservation_id=request_dto.reservation_id,
        trace_ctx=current_trace_context(get_request_id()),
    )
