from __future__ import annotations

import logging

from tablehold.application.dto.responses import MoneyResponse, RefundResponse
from tablehold.application.errors import (
    InvalidTransitionError,
    ReservationNotFoundError,
    ValidationFailedError,
)
from tablehold.application.mappers.event_envelope import reservation_payload
from tablehold.application.mappers.reservation_mapper import to_reservation_response
from tablehold.application.metrics.lifecycle import record_reservation_transition
from tablehold.application.ports.unit_of_work import UnitOfWorkFactory
from tablehold.application.services.notifications import ADMIN_TOPIC, enqueue_event
from tablehold.application.services.payment_gateway import PaymentVerificationGateway
from tablehold.application.use_cases.context import NO_TRACE, Clock, TraceContext, utc_now
from tablehold.application.use_cases.reservation_lifecycle import refresh_table_status
from tablehold.domain.common.ids import ReservationId
from tablehold.domain.reservation.entities import ReservationStatus, ReservationTransitionError

logger = logging.getLogger(__name__)


class RefundPayment:
    """Refund through the provider, then cancel the linked reservation."""

    def __init__(
        self,
        gateway: PaymentVerificationGateway,
        uow_factory: UnitOfWorkFactory,
        clock: Clock = utc_now,
    ) -> None:
        self._gateway = gateway
        self._uow_factory = uow_factory
        self._clock = clock

    def execute(
        self,
        payment_reference: str,
        amount_cents: int | None = None,
        reason: str | None = None,
        reservation_id: str | None = None,
        trace_ctx: TraceContext = NO_TRACE,
    ) -> RefundResponse:
        if reservation_id:
            self._ensure_refundable(ReservationId(reservation_id), payment_reference)

        refund = self._gateway.refund(
            payment_reference, amount_cents, reason or "requested_by_customer"
        )
        logger.info(
            "payment_refunded",
            extra={
                "payment_reference": payment_reference,
                "refund_id": refund.refund_id,
                "amount_cents": refund.amount_cents,
            },
        )
        response = RefundResponse(
            refundId=refund.refund_id,
            paymentReference=refund.payment_reference,
            amount=MoneyResponse(amountCents=refund.amount_cents, currency=self._gateway.currency),
            status=refund.status,
        )
        if not reservation_id:
            return response

        with self._uow_factory() as uow:
            reservation = uow.reservations.get_for_update(ReservationId(reservation_id))
            if reservation is None:
                logger.error(
                    "refund_reservation_vanished",
                    extra={"reservation_id": reservation_id, "refund_id": refund.refund_id},
                )
                return response
            now = self._clock()
            cancelled = reservation
            if reservation.status != ReservationStatus.CANCELLED:
                try:
                    cancelled = reservation.transition_to(ReservationStatus.CANCELLED, now)
                except ReservationTransitionError:
                    # Money already moved; report the state the reservation ended up in.
                    logger.warning(
                        "refund_reservation_not_cancellable",
                        extra={
                            "reservation_id": reservation_id,
                            "refund_id": refund.refund_id,
                            "status": reservation.status.value,
                        },
                    )
                    return response.model_copy(
                        update={"reservation": to_reservation_response(reservation)}
                    )
                if reservation.table_id is not None:
                    uow.tables.get_for_update(reservation.table_id, reservation.restaurant_id)
                uow.reservations.update(cancelled)
                refresh_table_status(uow, cancelled.table_id, now)
                enqueue_event(
                    uow.outbox,
                    restaurant_id=cancelled.restaurant_id,
                    topic=ADMIN_TOPIC,
                    event_type="reservation-refunded",
                    payload={
                        "reservation": reservation_payload(cancelled),
                        "refundId": refund.refund_id,
                    },
                    occurred_at=now,
                    trace_ctx=trace_ctx,
                )
            uow.commit()

        if cancelled is not reservation:
            record_reservation_transition(reservation.status, ReservationStatus.CANCELLED)
        return response.model_copy(update={"reservation": to_reservation_response(cancelled)})

    def _ensure_refundable(self, reservation_id: ReservationId, payment_reference: str) -> None:
        with self._uow_factory() as uow:
            reservation = uow.reservations.get(reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(f"reservation not found: {reservation_id}")
        if reservation.payment_reference != payment_reference:
            raise ValidationFailedError(
                "payment does not belong to this reservation",
                code="PAYMENT_RESERVATION_MISMATCH",
                details={"reservationId": str(reservation_id)},
            )
        if reservation.status != ReservationStatus.CANCELLED and not reservation.can_transition_to(
            ReservationStatus.CANCELLED
        ):
            raise InvalidTransitionError(
                f"cannot cancel a {reservation.status.value} reservation",
                details={"status": reservation.status.value},
            )
