from __future__ import annotations

from fastapi import APIRouter, Depends

from tablehold.api.dependencies import Container, get_container
from tablehold.api.middleware.request_id import get_request_id
from tablehold.application.dto.requests import UpdateStatusRequest
from tablehold.application.dto.responses import OrderResponse
from tablehold.infrastructure.observability.otel import current_trace_context

router = APIRouter()


@router.get("/v1/orders/{order_id}", response_model=OrderResponse)
def get_order(order_id: str, container: Container = Depends(get_container)) -> OrderResponse:
    return container.get_order.execute(order_id)


@router.get("/v1/payments/{payment_reference}/order", response_model=OrderResponse)
def get_order_by_payment(
    payment_reference: str,
    container: Container = Depends(get_container),
) -> OrderResponse:
    return container.get_order.by_payment_reference(payment_reference)


@router.patch("/v1/orders/{order_id}/status", response_model=OrderResponse)
def update_order_status(
    order_id: str,
    request_dto: UpdateStatusRequest,
    container: Container = Depends(get_container),
) -> OrderResponse:
    return container.update_order_status.execute(
        order_id,
        request_dto.status,
        trace_ctx=current_trace_context(get_request_id()),
    )
