from __future__ import annotations

from tablehold.application.dto.responses import (
    ReservationActionResponse,
    ReservationResponse,
)
from tablehold.domain.reservation.entities import Reservation


def to_reservation_response(reservation: Reservation) -> ReservationResponse:
    return ReservationResponse(
        reservationId=str(reservation.reservation_id),
        restaurantId=str(reservation.restaurant_id),
        tableId=str(reservation.table_id) if reservation.table_id else None,
        userId=str(reservation.user_id) if reservation.user_id else None,
        customerName=reservation.customer_name,
        customerPhone=reservation.customer_phone,
        customerEmail=reservation.customer_email,
        partySize=reservation.party_size,
        reservationDate=reservation.reservation_date,
        reservationTime=reservation.reservation_time,
        specialRequests=reservation.special_requests,
        status=reservation.status.value,
        expiresAt=reservation.expires_at,
        confirmedAt=reservation.confirmed_at,
        arrivalTime=reservation.arrival_time,
        paymentReference=reservation.payment_reference,
        hasPreOrder=reservation.has_pre_order,
        kitchenNotified=reservation.kitchen_notified,
        createdAt=reservation.created_at,
        updatedAt=reservation.updated_at,
    )


def to_action_response(
    reservation: Reservation, already_confirmed: bool = False
) -> ReservationActionResponse:
    return ReservationActionResponse(
        reservation=to_reservation_response(reservation),
        alreadyConfirmed=already_confirmed,
    )
