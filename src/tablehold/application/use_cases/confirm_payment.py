from __future__ import annotations

import logging
from dataclasses import replace

from tablehold.application.dto.responses import PaymentConfirmationResponse
from tablehold.application.errors import PaymentMismatchError, PaymentNotSucceededError
from tablehold.application.metrics.lifecycle import record_payment_mismatch
from tablehold.application.ports.payments import PaymentRecord
from tablehold.application.services.payment_gateway import PaymentVerificationGateway, check_payment
from tablehold.application.use_cases.commit_order import OrderCommitBuilder, OrderDraft
from tablehold.application.use_cases.context import NO_TRACE, Clock, TraceContext, utc_now
from tablehold.application.use_cases.reservation_intent import ReservationIntents
from tablehold.application.use_cases.reservation_lifecycle import ReservationLifecycle
from tablehold.domain.common.ids import UserId
from tablehold.domain.order.entities import OrderType

logger = logging.getLogger(__name__)


class ConfirmPayment:
    """Ties a succeeded payment to the order or reservation it paid for.

    The provider is queried before any transaction opens. Every branch is
    idempotent by payment reference, so the client call and the webhook can
    race without double-booking.
    """

    def __init__(
        self,
        gateway: PaymentVerificationGateway,
        lifecycle: ReservationLifecycle,
        intents: ReservationIntents,
        orders: OrderCommitBuilder,
        clock: Clock = utc_now,
    ) -> None:
        self._gateway = gateway
        self._lifecycle = lifecycle
        self._intents = intents
        self._orders = orders
        self._clock = clock

    def execute(
        self,
        payment_reference: str,
        reservation_id: str | None = None,
        reservation_intent: str | None = None,
        order: OrderDraft | None = None,
        actor: UserId | None = None,
        trace_ctx: TraceContext = NO_TRACE,
        payment_record: PaymentRecord | None = None,
    ) -> PaymentConfirmationResponse:
        record = payment_record or self._gateway.retrieve(payment_reference)
        if record is not None and not record.succeeded:
            raise PaymentNotSucceededError(
                f"payment not successful (status: {record.status})",
                details={"paymentReference": payment_reference, "status": record.status},
            )
        if record is not None:
            _ensure_reservation_linkage(record, reservation_id)

        response = PaymentConfirmationResponse(
            paymentReference=payment_reference,
            paymentStatus=record.status if record is not None else "unverified",
            verified=record is not None,
            confirmedAt=self._clock(),
        )

        if order is not None:
            if (
                order.order_type == OrderType.PRE_ORDER
                and order.reservation_id is None
                and reservation_id
            ):
                order = replace(order, reservation_id=reservation_id)
            authorized_total_cents = None
            if record is not None:
                quote = self._gateway.quote(order.restaurant_id, order.items, order.tip_cents)
                check_payment(record, quote.total, order.items)
                authorized_total_cents = record.amount_cents
            committed = self._orders.commit(
                order, payment_reference, authorized_total_cents, trace_ctx=trace_ctx
            )
            reservation = None
            if committed.order.reservationId:
                reservation = self._lifecycle.get(committed.order.reservationId)
            return response.model_copy(
                update={
                    "order": committed.order,
                    "created": committed.created,
                    "reservation": reservation,
                    "alreadyConfirmed": not committed.created,
                }
            )

        if reservation_id:
            action = self._lifecycle.confirm(
                reservation_id, payment_reference, actor=actor, trace_ctx=trace_ctx
            )
        elif reservation_intent:
            action = self._intents.confirm_intent(
                reservation_intent, payment_reference, trace_ctx=trace_ctx
            )
        else:
            logger.info(
                "payment_confirmed_without_linkage",
                extra={"payment_reference": payment_reference},
            )
            return response

        return response.model_copy(
            update={
                "reservation": action.reservation,
                "alreadyConfirmed": action.alreadyConfirmed,
            }
        )


def _ensure_reservation_linkage(record: PaymentRecord, reservation_id: str | None) -> None:
    linked = record.metadata.get("reservation_id")
    if reservation_id and linked and linked != str(reservation_id):
        record_payment_mismatch("reservation")
        raise PaymentMismatchError(
            "payment was created for a different reservation",
            code="RESERVATION_MISMATCH",
            details={"paymentReference": record.payment_reference},
        )
