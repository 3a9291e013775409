from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime
from typing import Any
from uuid import uuid4

from tablehold.application.dto.requests import CreateReservationRequest
from tablehold.application.dto.responses import (
    ReservationActionResponse,
    ReservationListResponse,
    ReservationResponse,
)
from tablehold.application.errors import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    ReservationConflictError,
    ReservationExpiredError,
    ReservationNotFoundError,
    TableNotFoundError,
    ValidationFailedError,
)
from tablehold.application.mappers.event_envelope import order_payload, reservation_payload
from tablehold.application.mappers.reservation_mapper import (
    to_action_response,
    to_reservation_response,
)
from tablehold.application.metrics.lifecycle import record_conflict, record_reservation_transition
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
from tablehold.application.services.settings_cache import SettingsCache
from tablehold.application.use_cases.context import NO_TRACE, Clock, TraceContext, utc_now
from tablehold.domain.common.ids import (
    PaymentReference,
    ReservationId,
    RestaurantId,
    TableId,
    UserId,
)
from tablehold.domain.reservation.conflicts import Slot
from tablehold.domain.reservation.entities import (
    TABLE_RELEASING_STATUSES,
    Reservation,
    ReservationStatus,
    create_tentative_reservation,
)
from tablehold.domain.table.entities import derive_table_status

logger = logging.getLogger(__name__)


def new_reservation_id() -> ReservationId:
    return ReservationId(f"res_{uuid4().hex[:12]}")


def refresh_table_status(uow: UnitOfWork, table_id: TableId | None, now: datetime) -> None:
    if table_id is None:
        return
    statuses = uow.reservations.holding_statuses_for_table(table_id)
    uow.tables.set_status(table_id, derive_table_status(statuses), now)


def conflict_details(conflict: Reservation) -> dict[str, Any]:
    return {"conflictingReservation": reservation_payload(conflict)}


def _expired_error(reservation: Reservation, now: datetime) -> ReservationExpiredError:
    return ReservationExpiredError(
        "reservation expired",
        details={
            "expiresAt": reservation.expires_at.isoformat() if reservation.expires_at else None,
            "expiredMinutesAgo": reservation.expired_minutes_ago(now),
        },
    )


class ReservationLifecycle:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        conflicts: ConflictDetector,
        settings: SettingsCache,
        clock: Clock = utc_now,
    ) -> None:
        self._uow_factory = uow_factory
        self._conflicts = conflicts
        self._settings = settings
        self._clock = clock

    def create_tentative(
        self,
        request: CreateReservationRequest,
        actor: UserId | None = None,
        trace_ctx: TraceContext = NO_TRACE,
    ) -> ReservationResponse:
        if request.party_size < 1:
            raise ValidationFailedError("party size must be >= 1", code="INVALID_PARTY_SIZE")

        restaurant_id = RestaurantId(request.restaurant_id)
        table_id = TableId(request.table_id) if request.table_id else None
        now = self._clock()
        with self._uow_factory() as uow:
            if table_id is not None:
                table = uow.tables.get_for_update(table_id, restaurant_id)
                if table is None:
                    raise TableNotFoundError(
                        f"table not found for restaurant_id={restaurant_id}, table_id={table_id}"
                    )
                if not table.fits(request.party_size):
                    raise ValidationFailedError(
                        "table capacity is insufficient for the party",
                        code="TABLE_CAPACITY_EXCEEDED",
                        details={"capacity": table.capacity, "partySize": request.party_size},
                    )
                slot = Slot(table_id, request.reservation_date, request.reservation_time)
                conflict = self._conflicts.first(uow.reservations, restaurant_id, slot)
                if conflict is not None:
                    record_conflict(restaurant_id, "create")
                    raise ReservationConflictError(
                        "table already reserved for this time",
                        details=conflict_details(conflict),
                    )

            reservation = create_tentative_reservation(
                reservation_id=new_reservation_id(),
                restaurant_id=restaurant_id,
                table_id=table_id,
                user_id=actor,
                customer_name=request.customer_name,
                customer_phone=request.customer_phone,
                customer_email=request.customer_email,
                party_size=request.party_size,
                reservation_date=request.reservation_date,
                reservation_time=request.reservation_time,
                special_requests=request.special_requests,
                now=now,
            )
            uow.reservations.add(reservation)
            enqueue_email(
                uow.outbox,
                restaurant_id=restaurant_id,
                to=reservation.customer_email,
                template="reservation-created",
                context=reservation_payload(reservation),
                occurred_at=now,
                trace_ctx=trace_ctx,
            )
            uow.commit()

        record_reservation_transition(None, ReservationStatus.TENTATIVE)
        logger.info(
            "reservation_created",
            extra={
                "reservation_id": reservation.reservation_id,
                "restaurant_id": restaurant_id,
                "table_id": table_id,
                "expires_at": reservation.expires_at.isoformat() if reservation.expires_at else None,
            },
        )
        return to_reservation_response(reservation)

    def verify_availability(
        self,
        reservation_id: str,
        restaurant_id: str | None = None,
    ) -> ReservationActionResponse:
        with self._uow_factory() as uow:
            reservation = self._locked(uow, reservation_id, restaurant_id)
            if reservation.status == ReservationStatus.CONFIRMED:
                return to_action_response(reservation, already_confirmed=True)
            if reservation.status == ReservationStatus.EXPIRED:
                raise _expired_error(reservation, self._clock())
            if reservation.status != ReservationStatus.TENTATIVE:
                raise ValidationFailedError(
                    f"reservation is not tentative (status={reservation.status.value})",
                    code="RESERVATION_NOT_TENTATIVE",
                    details={"status": reservation.status.value},
                )

            now = self._clock()
            self._expire_if_stale(uow, reservation, now)

            conflict = self._find_conflict(uow, reservation)
            if conflict is not None:
                record_conflict(reservation.restaurant_id, "verify")
                self._flip_expired(uow, reservation, now)
                uow.commit()
                raise ReservationConflictError(
                    "conflicting reservation detected",
                    details=conflict_details(conflict),
                )

            extended = reservation.extend_hold(now)
            uow.reservations.update(extended)
            uow.commit()

        logger.info(
            "reservation_hold_extended",
            extra={"reservation_id": reservation_id, "expires_at": extended.expires_at.isoformat()},
        )
        return to_action_response(extended)

    def confirm(
        self,
        reservation_id: str,
        payment_reference: str | None,
        actor: UserId | None = None,
        restaurant_id: str | None = None,
        trace_ctx: TraceContext = NO_TRACE,
    ) -> ReservationActionResponse:
        with self._uow_factory() as uow:
            reservation = self._locked(uow, reservation_id, restaurant_id)
            if actor and reservation.user_id and reservation.user_id != actor:
                raise ForbiddenError(
                    "not allowed to confirm this reservation",
                    code="RESERVATION_FORBIDDEN",
                )
            if reservation.status == ReservationStatus.CONFIRMED:
                return to_action_response(reservation, already_confirmed=True)
            if reservation.status == ReservationStatus.EXPIRED:
                raise _expired_error(reservation, self._clock())
            if reservation.status != ReservationStatus.TENTATIVE:
                raise ValidationFailedError(
                    f"reservation is not tentative (status={reservation.status.value})",
                    code="RESERVATION_NOT_TENTATIVE",
                    details={"status": reservation.status.value},
                )

            now = self._clock()
            self._expire_if_stale(uow, reservation, now)

            if reservation.table_id is not None:
                uow.tables.get_for_update(reservation.table_id, reservation.restaurant_id)
            conflict = self._find_conflict(uow, reservation)
            if conflict is not None:
                record_conflict(reservation.restaurant_id, "confirm")
                raise ReservationConflictError(
                    "table already reserved for this time",
                    details=conflict_details(conflict),
                )

            reference = PaymentReference(payment_reference) if payment_reference else None
            confirmed = reservation.confirm(reference, now)
            try:
                uow.reservations.update(confirmed)
                refresh_table_status(uow, confirmed.table_id, now)
                self._announce(uow, confirmed, "reservation-confirmed", now, trace_ctx)
                enqueue_email(
                    uow.outbox,
                    restaurant_id=confirmed.restaurant_id,
                    to=confirmed.customer_email,
                    template="reservation-confirmed",
                    context=reservation_payload(confirmed),
                    occurred_at=now,
                    trace_ctx=trace_ctx,
                )
                uow.commit()
            except DuplicatePaymentReferenceError as exc:
                raise ConflictError(
                    "payment reference already used by another reservation",
                    code="PAYMENT_REFERENCE_IN_USE",
                    details={"paymentReference": exc.payment_reference},
                ) from exc

        record_reservation_transition(ReservationStatus.TENTATIVE, ReservationStatus.CONFIRMED)
        logger.info(
            "reservation_confirmed",
            extra={
                "reservation_id": confirmed.reservation_id,
                "payment_reference": confirmed.payment_reference,
                "table_id": confirmed.table_id,
            },
        )
        return to_action_response(confirmed)

    def check_in(
        self,
        reservation_id: str,
        restaurant_id: str | None = None,
        trace_ctx: TraceContext = NO_TRACE,
    ) -> ReservationResponse:
        with self._uow_factory() as uow:
            reservation = self._locked(uow, reservation_id, restaurant_id)
            if reservation.status == ReservationStatus.SEATED:
                return to_reservation_response(reservation)
            if not reservation.can_transition_to(ReservationStatus.SEATED):
                raise InvalidTransitionError(
                    f"cannot check in a {reservation.status.value} reservation",
                    details={"status": reservation.status.value},
                )

            now = self._clock()
            if reservation.table_id is not None:
                uow.tables.get_for_update(reservation.table_id, reservation.restaurant_id)
            seated = reservation.seat(now)

            if seated.has_pre_order:
                pre_order = uow.orders.find_pre_order(seated.reservation_id)
                if pre_order is not None:
                    enqueue_event(
                        uow.outbox,
                        restaurant_id=seated.restaurant_id,
                        topic=KITCHEN_TOPIC,
                        event_type="customer-arrived",
                        payload={
                            "reservation": reservation_payload(seated),
                            "order": order_payload(pre_order),
                            "message": f"Customer {seated.customer_name} has arrived",
                        },
                        occurred_at=now,
                        trace_ctx=trace_ctx,
                    )
                    seated = replace(seated, kitchen_notified=True)

            uow.reservations.update(seated)
            refresh_table_status(uow, seated.table_id, now)
            self._announce(uow, seated, "reservation-updated", now, trace_ctx)
            uow.commit()

        record_reservation_transition(reservation.status, ReservationStatus.SEATED)
        logger.info(
            "reservation_checked_in",
            extra={
                "reservation_id": seated.reservation_id,
                "kitchen_notified": seated.kitchen_notified,
            },
        )
        return to_reservation_response(seated)

    def update_status(
        self,
        reservation_id: str,
        target: str,
        actor: UserId | None = None,
        trace_ctx: TraceContext = NO_TRACE,
    ) -> ReservationResponse:
        try:
            target_status = ReservationStatus(target)
        except ValueError as exc:
            raise ValidationFailedError(
                f"invalid status: {target}",
                code="INVALID_STATUS",
                details={"allowed": [status.value for status in ReservationStatus]},
            ) from exc

        if target_status == ReservationStatus.SEATED:
            return self.check_in(reservation_id, trace_ctx=trace_ctx)
        if target_status == ReservationStatus.CONFIRMED:
            return self.confirm(
                reservation_id, payment_reference=None, actor=actor, trace_ctx=trace_ctx
            ).reservation

        with self._uow_factory() as uow:
            reservation = self._locked(uow, reservation_id, None)
            now = self._clock()
            if target_status == ReservationStatus.CANCELLED:
                self._ensure_cancellable(reservation, now)
            if not reservation.can_transition_to(target_status):
                raise InvalidTransitionError(
                    f"cannot move reservation from {reservation.status.value} to {target_status.value}",
                    details={"status": reservation.status.value, "target": target_status.value},
                )

            if reservation.table_id is not None:
                uow.tables.get_for_update(reservation.table_id, reservation.restaurant_id)
            updated = reservation.transition_to(target_status, now)
            uow.reservations.update(updated)
            if target_status in TABLE_RELEASING_STATUSES or target_status == ReservationStatus.EXPIRED:
                refresh_table_status(uow, updated.table_id, now)
            self._announce(uow, updated, "reservation-updated", now, trace_ctx)
            if target_status == ReservationStatus.CANCELLED:
                enqueue_email(
                    uow.outbox,
                    restaurant_id=updated.restaurant_id,
                    to=updated.customer_email,
                    template="reservation-cancelled",
                    context=reservation_payload(updated),
                    occurred_at=now,
                    trace_ctx=trace_ctx,
                )
            uow.commit()

        record_reservation_transition(reservation.status, target_status)
        logger.info(
            "reservation_status_updated",
            extra={
                "reservation_id": updated.reservation_id,
                "from_status": reservation.status.value,
                "to_status": target_status.value,
            },
        )
        return to_reservation_response(updated)

    def get(self, reservation_id: str) -> ReservationResponse:
        with self._uow_factory() as uow:
            reservation = uow.reservations.get(ReservationId(reservation_id))
        if reservation is None:
            raise ReservationNotFoundError(f"reservation not found: {reservation_id}")
        return to_reservation_response(reservation)

    def list_for_restaurant(
        self,
        restaurant_id: str,
        reservation_date: date | None = None,
        status: str | None = None,
    ) -> ReservationListResponse:
        status_filter = None
        if status is not None:
            try:
                status_filter = ReservationStatus(status)
            except ValueError as exc:
                raise ValidationFailedError(
                    f"invalid status: {status}", code="INVALID_STATUS"
                ) from exc
        with self._uow_factory() as uow:
            reservations = uow.reservations.list_for_restaurant(
                RestaurantId(restaurant_id), reservation_date, status_filter
            )
        return ReservationListResponse(
            reservations=[to_reservation_response(item) for item in reservations]
        )

    def _locked(
        self,
        uow: UnitOfWork,
        reservation_id: str,
        restaurant_id: str | None,
    ) -> Reservation:
        reservation = uow.reservations.get_for_update(ReservationId(reservation_id))
        if reservation is None:
            raise ReservationNotFoundError(f"reservation not found: {reservation_id}")
        if restaurant_id and str(reservation.restaurant_id) != str(restaurant_id):
            raise ValidationFailedError(
                "reservation belongs to a different restaurant",
                code="WRONG_RESTAURANT",
            )
        return reservation

    def _find_conflict(self, uow: UnitOfWork, reservation: Reservation) -> Reservation | None:
        if reservation.table_id is None:
            return None
        slot = Slot(reservation.table_id, reservation.reservation_date, reservation.reservation_time)
        return self._conflicts.first(
            uow.reservations,
            reservation.restaurant_id,
            slot,
            exclude_id=reservation.reservation_id,
        )

    def _expire_if_stale(self, uow: UnitOfWork, reservation: Reservation, now: datetime) -> None:
        """Commit the expired flip before raising so the expiry stays observable."""
        if not reservation.is_hold_expired(now):
            return
        error = _expired_error(reservation, now)
        self._flip_expired(uow, reservation, now)
        uow.commit()
        raise error

    def _flip_expired(self, uow: UnitOfWork, reservation: Reservation, now: datetime) -> None:
        uow.reservations.update(reservation.expire(now))
        record_reservation_transition(reservation.status, ReservationStatus.EXPIRED)
        logger.info(
            "reservation_expired",
            extra={"reservation_id": reservation.reservation_id, "table_id": reservation.table_id},
        )

    def _ensure_cancellable(self, reservation: Reservation, now: datetime) -> None:
        if reservation.is_terminal or not reservation.can_transition_to(ReservationStatus.CANCELLED):
            raise ValidationFailedError(
                f"cannot cancel a {reservation.status.value} reservation",
                code="INVALID_RESERVATION_STATUS",
                details={"status": reservation.status.value},
            )
        if reservation.status == ReservationStatus.TENTATIVE:
            return
        window_hours = self._settings.cancellation_window_hours(reservation.restaurant_id)
        if reservation.hours_until_slot(now) < window_hours:
            raise ValidationFailedError(
                f"cancellations are only allowed more than {window_hours} hours before the reservation",
                code="CANCELLATION_WINDOW_PASSED",
                details={"cancellationWindowHours": window_hours},
            )

    def _announce(
        self,
        uow: UnitOfWork,
        reservation: Reservation,
        event_type: str,
        now: datetime,
        trace_ctx: TraceContext,
    ) -> None:
        payload = reservation_payload(reservation)
        enqueue_event(
            uow.outbox,
            restaurant_id=reservation.restaurant_id,
            topic=ADMIN_TOPIC,
            event_type=event_type,
            payload=payload,
            occurred_at=now,
            trace_ctx=trace_ctx,
        )
        if reservation.table_id is not None:
            enqueue_event(
                uow.outbox,
                restaurant_id=reservation.restaurant_id,
                topic=table_topic(reservation.table_id),
                event_type=event_type,
                payload=payload,
                occurred_at=now,
                trace_ctx=trace_ctx,
            )
