from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from uuid import uuid4

from tablehold.application.dto.requests import OrderDraftRequest
from tablehold.application.dto.responses import OrderCommitResponse
from tablehold.application.errors import (
    ConflictError,
    InternalError,
    PaymentMismatchError,
    ReservationConflictError,
    ReservationExpiredError,
    ReservationNotFoundError,
    TableNotFoundError,
    ValidationFailedError,
)
from tablehold.application.mappers.event_envelope import order_payload, reservation_payload
from tablehold.application.mappers.order_mapper import to_order_response
from tablehold.application.metrics.lifecycle import (
    record_conflict,
    record_order_committed,
    record_payment_mismatch,
    record_reservation_transition,
)
from tablehold.application.ports.repositories import DuplicatePaymentReferenceError
from tablehold.application.ports.unit_of_work import UnitOfWork, UnitOfWorkFactory
from tablehold.application.services.conflict_detector import ConflictDetector
from tablehold.application.services.notifications import (
    ADMIN_TOPIC,
    KITCHEN_TOPIC,
    enqueue_email,
    enqueue_event,
    table_topic,
)
from tablehold.application.services.payment_gateway import CartLine, Quote, price_cart
from tablehold.application.use_cases.context import NO_TRACE, Clock, TraceContext, utc_now
from tablehold.application.use_cases.reservation_lifecycle import (
    conflict_details,
    refresh_table_status,
)
from tablehold.domain.common.ids import (
    OrderId,
    OrderItemId,
    PaymentReference,
    ReservationId,
    RestaurantId,
    TableId,
)
from tablehold.domain.common.money import Money
from tablehold.domain.order.entities import (
    TABLE_BOUND_ORDER_TYPES,
    Order,
    OrderItem,
    OrderType,
    create_pending_order,
)
from tablehold.domain.reservation.conflicts import Slot
from tablehold.domain.reservation.entities import Reservation, ReservationStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderDraft:
    restaurant_id: str
    order_type: OrderType
    items: list[CartLine]
    tip_cents: int = 0
    table_id: str | None = None
    reservation_id: str | None = None
    customer_notes: str | None = None
    customer_email: str | None = None

    @classmethod
    def from_request(cls, request: OrderDraftRequest) -> OrderDraft:
        try:
            order_type = OrderType(request.order_type)
        except ValueError as exc:
            raise ValidationFailedError(
                f"invalid order_type: {request.order_type}",
                code="INVALID_ORDER_TYPE",
                details={"allowed": [item.value for item in OrderType]},
            ) from exc
        return cls(
            restaurant_id=request.restaurant_id,
            order_type=order_type,
            items=[
                CartLine(
                    menu_item_id=item.menu_item_id,
                    quantity=item.quantity,
                    special_instructions=item.special_instructions,
                )
                for item in request.items
            ],
            tip_cents=request.tip_cents,
            table_id=request.table_id,
            reservation_id=request.reservation_id,
            customer_notes=request.customer_notes,
            customer_email=request.customer_email,
        )


class OrderCommitBuilder:
    """Writes an order and its line items in one transaction.

    Prices are re-read from the catalog inside the transaction. When an
    authorized amount is given, the recomputed total must match it to the
    cent or nothing is written.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        conflicts: ConflictDetector,
        currency: str,
        clock: Clock = utc_now,
    ) -> None:
        self._uow_factory = uow_factory
        self._conflicts = conflicts
        self._currency = currency.upper()
        self._clock = clock

    def commit(
        self,
        draft: OrderDraft,
        payment_reference: str,
        authorized_total_cents: int | None,
        trace_ctx: TraceContext = NO_TRACE,
    ) -> OrderCommitResponse:
        self._validate_shape(draft)
        reference = PaymentReference(payment_reference)
        try:
            with self._uow_factory() as uow:
                existing = uow.orders.get_by_payment_reference(reference)
                if existing is not None:
                    return OrderCommitResponse(order=to_order_response(existing), created=False)
                order, reservation = self._write(
                    uow, draft, reference, authorized_total_cents, trace_ctx
                )
                uow.commit()
        except DuplicatePaymentReferenceError:
            return self._replay(reference)

        record_order_committed(order.restaurant_id, order.order_type.value)
        if reservation is not None and reservation.status == ReservationStatus.CONFIRMED:
            record_reservation_transition(ReservationStatus.TENTATIVE, ReservationStatus.CONFIRMED)
        logger.info(
            "order_committed",
            extra={
                "order_id": order.order_id,
                "restaurant_id": order.restaurant_id,
                "order_type": order.order_type.value,
                "payment_reference": reference,
                "total_cents": order.total.amount_cents,
            },
        )
        return OrderCommitResponse(order=to_order_response(order), created=True)

    def _validate_shape(self, draft: OrderDraft) -> None:
        if draft.order_type in TABLE_BOUND_ORDER_TYPES and not draft.table_id:
            raise ValidationFailedError(
                "table id is required for dine-in and walk-in orders",
                code="TABLE_REQUIRED",
            )
        if draft.order_type == OrderType.PRE_ORDER and not draft.reservation_id:
            raise ValidationFailedError(
                "reservation id is required for pre-orders",
                code="RESERVATION_REQUIRED",
            )

    def _write(
        self,
        uow: UnitOfWork,
        draft: OrderDraft,
        payment_reference: PaymentReference,
        authorized_total_cents: int | None,
        trace_ctx: TraceContext,
    ) -> tuple[Order, Reservation | None]:
        now = self._clock()
        restaurant_id = RestaurantId(draft.restaurant_id)

        reservation: Reservation | None = None
        if draft.order_type == OrderType.PRE_ORDER:
            reservation = self._lock_pre_order_reservation(uow, draft, now)

        table_id = TableId(draft.table_id) if draft.table_id else None
        if table_id is None and reservation is not None:
            table_id = reservation.table_id
        if draft.order_type in TABLE_BOUND_ORDER_TYPES and table_id is not None:
            self._guard_table(uow, restaurant_id, table_id, now)

        quote = price_cart(uow.menu, restaurant_id, draft.items, draft.tip_cents, self._currency)
        if authorized_total_cents is not None and quote.total.amount_cents != authorized_total_cents:
            record_payment_mismatch("commit_amount")
            raise PaymentMismatchError(
                "recomputed order total does not match the authorized amount",
                code="AMOUNT_MISMATCH",
                details={
                    "paymentReference": payment_reference,
                    "expectedCents": quote.total.amount_cents,
                    "authorizedCents": authorized_total_cents,
                },
            )

        order = create_pending_order(
            order_id=OrderId(f"ord_{uuid4().hex[:12]}"),
            restaurant_id=restaurant_id,
            table_id=table_id,
            reservation_id=ReservationId(draft.reservation_id) if draft.reservation_id else None,
            order_type=draft.order_type,
            payment_reference=payment_reference,
            items=_snapshot_items(quote),
            tip=Money(amount_cents=draft.tip_cents, currency=self._currency),
            now=now,
            customer_notes=draft.customer_notes,
        )
        uow.orders.add(order)

        if reservation is not None:
            reservation = self._link_reservation(uow, reservation, payment_reference, now)

        self._notify(uow, order, reservation, draft, now, trace_ctx)
        return order, reservation

    def _lock_pre_order_reservation(
        self,
        uow: UnitOfWork,
        draft: OrderDraft,
        now: datetime,
    ) -> Reservation:
        reservation = uow.reservations.get_for_update(ReservationId(str(draft.reservation_id)))
        if reservation is None:
            raise ReservationNotFoundError(f"reservation not found: {draft.reservation_id}")
        if str(reservation.restaurant_id) != str(draft.restaurant_id):
            raise ValidationFailedError(
                "reservation belongs to a different restaurant",
                code="WRONG_RESTAURANT",
            )
        if reservation.status == ReservationStatus.CANCELLED:
            raise ValidationFailedError(
                "cannot create a pre-order for a cancelled reservation",
                code="RESERVATION_CANCELLED",
            )
        if reservation.is_hold_expired(now):
            minutes_ago = reservation.expired_minutes_ago(now)
            uow.reservations.update(reservation.expire(now))
            uow.commit()
            record_reservation_transition(ReservationStatus.TENTATIVE, ReservationStatus.EXPIRED)
            raise ReservationExpiredError(
                "reservation expired",
                details={"expiredMinutesAgo": minutes_ago},
            )
        if reservation.status == ReservationStatus.EXPIRED:
            raise ValidationFailedError(
                "cannot create a pre-order for an expired reservation",
                code="RESERVATION_EXPIRED",
            )
        return reservation

    def _guard_table(
        self,
        uow: UnitOfWork,
        restaurant_id: RestaurantId,
        table_id: TableId,
        now: datetime,
    ) -> None:
        table = uow.tables.get_for_update(table_id, restaurant_id)
        if table is None:
            raise TableNotFoundError(
                f"table not found for restaurant_id={restaurant_id}, table_id={table_id}"
            )
        buffer = timedelta(minutes=self._conflicts.buffer_minutes(restaurant_id))
        days = sorted({now.date(), (now + buffer).date()})
        upcoming_reservations = [
            reservation
            for day in days
            for reservation in uow.reservations.list_holding_table(table_id, day)
        ]
        for upcoming in upcoming_reservations:
            if upcoming.status != ReservationStatus.CONFIRMED:
                continue
            if now <= upcoming.scheduled_at <= now + buffer:
                record_conflict(restaurant_id, "walk_in")
                raise ConflictError(
                    "upcoming reservation detected for this table",
                    code="UPCOMING_RESERVATION",
                    details=conflict_details(upcoming),
                )

    def _link_reservation(
        self,
        uow: UnitOfWork,
        reservation: Reservation,
        payment_reference: PaymentReference,
        now: datetime,
    ) -> Reservation:
        linked = replace(reservation, has_pre_order=True, updated_at=now)
        if reservation.status == ReservationStatus.TENTATIVE:
            if reservation.table_id is not None:
                uow.tables.get_for_update(reservation.table_id, reservation.restaurant_id)
                slot = Slot(
                    reservation.table_id,
                    reservation.reservation_date,
                    reservation.reservation_time,
                )
                conflict = self._conflicts.first(
                    uow.reservations,
                    reservation.restaurant_id,
                    slot,
                    exclude_id=reservation.reservation_id,
                )
                if conflict is not None:
                    record_conflict(reservation.restaurant_id, "pre_order")
                    raise ReservationConflictError(
                        "table already reserved for this time",
                        details=conflict_details(conflict),
                    )
            linked = linked.confirm(payment_reference, now)
        uow.reservations.update(linked)
        refresh_table_status(uow, linked.table_id, now)
        return linked

    def _notify(
        self,
        uow: UnitOfWork,
        order: Order,
        reservation: Reservation | None,
        draft: OrderDraft,
        now: datetime,
        trace_ctx: TraceContext,
    ) -> None:
        payload = order_payload(order)
        if reservation is not None:
            payload["reservation"] = reservation_payload(reservation)
        kitchen_event = "new-pre-order" if order.order_type == OrderType.PRE_ORDER else "new-order"
        enqueue_event(
            uow.outbox,
            restaurant_id=order.restaurant_id,
            topic=KITCHEN_TOPIC,
            event_type=kitchen_event,
            payload=payload,
            occurred_at=now,
            trace_ctx=trace_ctx,
        )
        enqueue_event(
            uow.outbox,
            restaurant_id=order.restaurant_id,
            topic=ADMIN_TOPIC,
            event_type="new-order",
            payload=payload,
            occurred_at=now,
            trace_ctx=trace_ctx,
        )
        if order.table_id is not None:
            enqueue_event(
                uow.outbox,
                restaurant_id=order.restaurant_id,
                topic=table_topic(order.table_id),
                event_type="order-created",
                payload=payload,
                occurred_at=now,
                trace_ctx=trace_ctx,
            )
        recipient = draft.customer_email or (reservation.customer_email if reservation else None)
        enqueue_email(
            uow.outbox,
            restaurant_id=order.restaurant_id,
            to=recipient,
            template="order-receipt",
            context=payload,
            occurred_at=now,
            trace_ctx=trace_ctx,
        )

    def _replay(self, payment_reference: PaymentReference) -> OrderCommitResponse:
        with self._uow_factory() as uow:
            existing = uow.orders.get_by_payment_reference(payment_reference)
        if existing is None:
            raise InternalError(
                "payment reference conflict without a stored order",
                code="PAYMENT_REFERENCE_REPLAY_FAILED",
            )
        logger.info(
            "order_commit_replayed",
            extra={"order_id": existing.order_id, "payment_reference": payment_reference},
        )
        return OrderCommitResponse(order=to_order_response(existing), created=False)


def _snapshot_items(quote: Quote) -> list[OrderItem]:
    return [
        OrderItem(
            item_id=OrderItemId(f"oit_{uuid4().hex[:12]}"),
            menu_item_id=line.menu_item.item_id,
            name=line.menu_item.name,
            unit_price=line.menu_item.price_money,
            quantity=line.quantity,
            subtotal=line.subtotal,
            special_instructions=line.special_instructions,
        )
        for line in quote.lines
    ]
