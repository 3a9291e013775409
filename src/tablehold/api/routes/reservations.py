from __future__ import annotations

from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Header, Query, status

from tablehold.api.dependencies import Container, get_container
from tablehold.api.middleware.request_id import get_request_id
from tablehold.application.dto.requests import (
    ConfirmReservationRequest,
    CreateReservationRequest,
    UpdateStatusRequest,
    VerifyIntentRequest,
    VerifyReservationRequest,
)
from tablehold.application.dto.responses import (
    ReservationActionResponse,
    ReservationIntentResponse,
    ReservationListResponse,
    ReservationResponse,
)
from tablehold.domain.common.ids import UserId
from tablehold.domain.reservation.entities import ReservationStatus
from tablehold.infrastructure.observability.otel import current_trace_context

router = APIRouter()


def _actor(x_user_id: str | None) -> UserId | None:
    return UserId(x_user_id) if x_user_id else None


@router.post(
    "/v1/reservations",
    response_model=ReservationResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_reservation(
    request_dto: CreateReservationRequest,
    x_user_id: str | None = Header(default=None),
    container: Container = Depends(get_container),
) -> ReservationResponse:
    return container.lifecycle.create_tentative(
        request_dto,
        actor=_actor(x_user_id),
        trace_ctx=current_trace_context(get_request_id()),
    )


@router.post(
    "/v1/reservations/intents",
    response_model=ReservationIntentResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_reservation_intent(
    request_dto: CreateReservationRequest,
    x_user_id: str | None = Header(default=None),
    container: Container = Depends(get_container),
) -> ReservationIntentResponse:
    return container.intents.create_intent(request_dto, actor=_actor(x_user_id))


@router.post("/v1/reservations/intents/verify")
def verify_reservation_intent(
    request_dto: VerifyIntentRequest,
    container: Container = Depends(get_container),
) -> dict[str, Any]:
    claims = container.intents.verify_intent(request_dto.token)
    return {"valid": True, "intent": claims}


@router.get("/v1/reservations/{reservation_id}", response_model=ReservationResponse)
def get_reservation(
    reservation_id: str,
    container: Container = Depends(get_container),
) -> ReservationResponse:
    return container.lifecycle.get(reservation_id)


@router.get(
    "/v1/restaurants/{restaurant_id}/reservations",
    response_model=ReservationListResponse,
)
def list_reservations(
    restaurant_id: str,
    reservation_date: date | None = Query(default=None, alias="date"),
    status_filter: str | None = Query(default=None, alias="status"),
    container: Container = Depends(get_container),
) -> ReservationListResponse:
    return container.lifecycle.list_for_restaurant(restaurant_id, reservation_date, status_filter)


@router.post(
    "/v1/reservations/{reservation_id}/verify",
    response_model=ReservationActionResponse,
)
def verify_reservation(
    reservation_id: str,
    request_dto: VerifyReservationRequest | None = None,
    container: Container = Depends(get_container),
) -> ReservationActionResponse:
    restaurant_id = request_dto.restaurant_id if request_dto else None
    return container.lifecycle.verify_availability(reservation_id, restaurant_id=restaurant_id)


@router.post(
    "/v1/reservations/{reservation_id}/confirm",
    response_model=ReservationActionResponse,
)
def confirm_reservation(
    reservation_id: str,
    request_dto: ConfirmReservationRequest,
    x_user_id: str | None = Header(default=None),
    container: Container = Depends(get_container),
) -> ReservationActionResponse:
    return container.lifecycle.confirm(
        reservation_id,
        request_dto.payment_reference,
        actor=_actor(x_user_id),
        restaurant_id=request_dto.restaurant_id,
        trace_ctx=current_trace_context(get_request_id()),
    )


@router.post(
    "/v1/reservations/{reservation_id}/check-in",
    response_model=ReservationResponse,
)
def check_in_reservation(
    reservation_id: str,
    restaurant_id: str | None = Query(default=None),
    container: Container = Depends(get_container),
) -> ReservationResponse:
    return container.lifecycle.check_in(
        reservation_id,
        restaurant_id=restaurant_id,
        trace_ctx=current_trace_context(get_request_id()),
    )


@router.patch(
    "/v1/reservations/{reservation_id}/status",
    response_model=ReservationResponse,
)
def update_reservation_status(
    reservation_id: str,
    request_dto: UpdateStatusRequest,
    x_user_id: str | None = Header(default=None),
    container: Container = Depends(get_container),
) -> ReservationResponse:
    return container.lifecycle.update_status(
        reservation_id,
        request_dto.status,
        actor=_actor(x_user_id),
        trace_ctx=current_trace_context(get_request_id()),
    )


@router.delete("/v1/reservations/{reservation_id}", response_model=ReservationResponse)
def cancel_reservation(
    reservation_id: str,
    x_user_id: str | None = Header(default=None),
    container: Container = Depends(get_container),
) -> ReservationResponse:
    return container.lifecycle.update_status(
        reservation_id,
        ReservationStatus.CANCELLED.value,
        actor=_actor(x_user_id),
        trace_ctx=current_trace_context(get_request_id()),
    )
