"""Signed reservation intents.

An intent carries the reservation fields in an HS256 token instead of a stored
tentative row. Nothing is persisted until the payment succeeds and
``confirm_intent`` materializes a confirmed reservation.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import Any

import jwt

from tablehold.application.dto.requests import CreateReservationRequest
from tablehold.application.dto.responses import (
    ReservationActionResponse,
    ReservationIntentResponse,
)
from tablehold.application.errors import (
    ExpiredError,
    InternalError,
    ReservationConflictError,
    TableNotFoundError,
    ValidationFailedError,
)
from tablehold.application.mappers.event_envelope import reservation_payload
from tablehold.application.mappers.reservation_mapper import to_action_response
from tablehold.application.metrics.lifecycle import record_conflict, record_reservation_transition
from tablehold.application.ports.repositories import DuplicatePaymentReferenceError
from tablehold.application.ports.unit_of_work import UnitOfWork, UnitOfWorkFactory
from tablehold.application.services.conflict_detector import ConflictDetector
from tablehold.application.services.notifications import ADMIN_TOPIC, enqueue_event
from tablehold.application.use_cases.context import NO_TRACE, Clock, TraceContext, utc_now
from tablehold.application.use_cases.reservation_lifecycle import (
    conflict_details,
    new_reservation_id,
    refresh_table_status,
)
from tablehold.domain.common.ids import PaymentReference, RestaurantId, TableId, UserId
from tablehold.domain.reservation.conflicts import Slot
from tablehold.domain.reservation.entities import (
    HOLD_DURATION,
    Reservation,
    ReservationStatus,
    create_tentative_reservation,
)

logger = logging.getLogger(__name__)

INTENT_TOKEN_LIFETIME = timedelta(minutes=20)
INTENT_ALGORITHM = "HS256"


class IntentSigner:
    def __init__(self, secret: str | None, algorithm: str = INTENT_ALGORITHM) -> None:
        self._secret = secret
        self._algorithm = algorithm

    def sign(self, claims: dict[str, Any], now: datetime, lifetime: timedelta) -> str:
        payload = dict(claims)
        payload["iat"] = int(now.timestamp())
        payload["exp"] = int((now + lifetime).timestamp())
        return jwt.encode(payload, self._require_secret(), algorithm=self._algorithm)

    def decode(self, token: str | None) -> dict[str, Any]:
        if not token:
            raise ValidationFailedError("intent token required", code="INTENT_REQUIRED")
        try:
            return jwt.decode(token, self._require_secret(), algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError as exc:
            raise ExpiredError("intent expired", code="INTENT_EXPIRED") from exc
        except jwt.PyJWTError as exc:
            raise ValidationFailedError("invalid intent", code="INTENT_INVALID") from exc

    def _require_secret(self) -> str:
        if not self._secret:
            raise InternalError(
                "intent signing secret is not configured",
                code="INTENT_SIGNING_UNCONFIGURED",
            )
        return self._secret


class ReservationIntents:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        conflicts: ConflictDetector,
        signer: IntentSigner,
        clock: Clock = utc_now,
    ) -> None:
        self._uow_factory = uow_factory
        self._conflicts = conflicts
        self._signer = signer
        self._clock = clock

    def create_intent(
        self,
        request: CreateReservationRequest,
        actor: UserId | None = None,
    ) -> ReservationIntentResponse:
        if request.party_size < 1:
            raise ValidationFailedError("party size must be >= 1", code="INVALID_PARTY_SIZE")

        restaurant_id = RestaurantId(request.restaurant_id)
        if request.table_id:
            table_id = TableId(request.table_id)
            with self._uow_factory() as uow:
                table = uow.tables.get(table_id, restaurant_id)
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
                record_conflict(restaurant_id, "intent")
                raise ReservationConflictError(
                    "table already reserved for this time",
                    details=conflict_details(conflict),
                )

        now = self._clock()
        expires_at = now + HOLD_DURATION
        claims = {
            "restaurant_id": request.restaurant_id,
            "table_id": request.table_id,
            "user_id": actor,
            "customer_name": request.customer_name,
            "customer_phone": request.customer_phone,
            "customer_email": request.customer_email,
            "party_size": request.party_size,
            "reservation_date": request.reservation_date.isoformat(),
            "reservation_time": request.reservation_time.isoformat(),
            "special_requests": request.special_requests,
            "expires_at": expires_at.isoformat(),
        }
        token = self._signer.sign(claims, now, INTENT_TOKEN_LIFETIME)
        logger.info(
            "reservation_intent_created",
            extra={"restaurant_id": restaurant_id, "table_id": request.table_id},
        )
        return ReservationIntentResponse(
            token=token,
            restaurantId=request.restaurant_id,
            tableId=request.table_id,
            partySize=request.party_size,
            reservationDate=request.reservation_date,
            reservationTime=request.reservation_time,
            expiresAt=expires_at,
        )

    def verify_intent(self, token: str | None) -> dict[str, Any]:
        return self._signer.decode(token)

    def confirm_intent(
        self,
        token: str,
        payment_reference: str,
        trace_ctx: TraceContext = NO_TRACE,
    ) -> ReservationActionResponse:
        claims = self.verify_intent(token)
        reference = PaymentReference(payment_reference)
        try:
            with self._uow_factory() as uow:
                existing = uow.reservations.get_by_payment_reference(reference)
                if existing is not None:
                    return to_action_response(existing, already_confirmed=True)
                created = self._materialize(uow, claims, reference, trace_ctx)
                uow.commit()
        except DuplicatePaymentReferenceError:
            return self._replay(reference)

        record_reservation_transition(None, ReservationStatus.CONFIRMED)
        logger.info(
            "reservation_confirmed",
            extra={
                "reservation_id": created.reservation_id,
                "payment_reference": reference,
                "source": "intent",
            },
        )
        return to_action_response(created)

    def _materialize(
        self,
        uow: UnitOfWork,
        claims: dict[str, Any],
        payment_reference: PaymentReference,
        trace_ctx: TraceContext,
    ) -> Reservation:
        try:
            restaurant_id = RestaurantId(str(claims["restaurant_id"]))
            table_id = TableId(str(claims["table_id"])) if claims.get("table_id") else None
            reservation_date = date.fromisoformat(claims["reservation_date"])
            reservation_time = time.fromisoformat(claims["reservation_time"])
            party_size = int(claims["party_size"])
            customer_name = str(claims["customer_name"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationFailedError("invalid intent", code="INTENT_INVALID") from exc

        now = self._clock()
        if table_id is not None:
            table = uow.tables.get_for_update(table_id, restaurant_id)
            if table is None:
                raise TableNotFoundError(
                    f"table not found for restaurant_id={restaurant_id}, table_id={table_id}"
                )
            slot = Slot(table_id, reservation_date, reservation_time)
            conflict = self._conflicts.first(uow.reservations, restaurant_id, slot)
            if conflict is not None:
                record_conflict(restaurant_id, "intent_confirm")
                raise ReservationConflictError(
                    "table already reserved for this time",
                    details=conflict_details(conflict),
                )

        user_id = claims.get("user_id")
        tentative = create_tentative_reservation(
            reservation_id=new_reservation_id(),
            restaurant_id=restaurant_id,
            table_id=table_id,
            user_id=UserId(str(user_id)) if user_id else None,
            customer_name=customer_name,
            customer_phone=claims.get("customer_phone"),
            customer_email=claims.get("customer_email"),
            party_size=party_size,
            reservation_date=reservation_date,
            reservation_time=reservation_time,
            special_requests=claims.get("special_requests"),
            now=now,
        )
        confirmed = tentative.confirm(payment_reference, now)
        uow.reservations.add(confirmed)
        refresh_table_status(uow, table_id, now)
        enqueue_event(
            uow.outbox,
            restaurant_id=restaurant_id,
            topic=ADMIN_TOPIC,
            event_type="reservation-confirmed",
            payload=reservation_payload(confirmed),
            occurred_at=now,
            trace_ctx=trace_ctx,
        )
        return confirmed

    def _replay(self, payment_reference: PaymentReference) -> ReservationActionResponse:
        with self._uow_factory() as uow:
            existing = uow.reservations.get_by_payment_reference(payment_reference)
        if existing is None:
            raise InternalError(
                "payment reference conflict without a stored reservation",
                code="PAYMENT_REFERENCE_REPLAY_FAILED",
            )
        return to_action_response(existing, already_confirmed=True)
