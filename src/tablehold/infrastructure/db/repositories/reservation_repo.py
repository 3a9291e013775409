from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import func, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tablehold.application.ports.repositories import ReservationRepository
from tablehold.domain.common.ids import (
    PaymentReference,
    ReservationId,
    RestaurantId,
    TableId,
    UserId,
)
from tablehold.domain.reservation.entities import (
    TABLE_HOLDING_STATUSES,
    Reservation,
    ReservationStatus,
)
from tablehold.infrastructure.db.models.reservation import ReservationModel
from tablehold.infrastructure.db.repositories.integrity import translate_integrity_error

_HOLDING_VALUES = [status.value for status in TABLE_HOLDING_STATUSES]


def _aware(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class SqlAlchemyReservationRepository(ReservationRepository):
    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, reservation_id: ReservationId) -> Reservation | None:
        model = self._session.get(ReservationModel, str(reservation_id))
        return self._to_domain(model) if model is not None else None

    def get_for_update(self, reservation_id: ReservationId) -> Reservation | None:
        statement = (
            select(ReservationModel)
            .where(ReservationModel.id == str(reservation_id))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        model = self._session.execute(statement).scalar_one_or_none()
        return self._to_domain(model) if model is not None else None

    def get_by_payment_reference(
        self, payment_reference: PaymentReference
    ) -> Reservation | None:
        statement = (
            select(ReservationModel)
            .where(ReservationModel.payment_reference == str(payment_reference))
            .limit(1)
        )
        model = self._session.execute(statement).scalar_one_or_none()
        return self._to_domain(model) if model is not None else None

    def add(self, reservation: Reservation) -> None:
        self._session.add(self._to_model(reservation))
        self._flush(reservation.payment_reference)

    def update(self, reservation: Reservation) -> None:
        model = self._session.get(ReservationModel, str(reservation.reservation_id))
        if model is None:
            raise LookupError(f"reservation {reservation.reservation_id} not found")
        self._apply(model, reservation)
        self._flush(reservation.payment_reference)

    def list_holding_table(self, table_id: TableId, reservation_date: date) -> list[Reservation]:
        statement = (
            select(ReservationModel)
            .where(
                ReservationModel.table_id == str(table_id),
                ReservationModel.reservation_date == reservation_date,
                ReservationModel.status.in_(_HOLDING_VALUES),
            )
            .order_by(ReservationModel.reservation_time, ReservationModel.id)
        )
        return [self._to_domain(model) for model in self._session.scalars(statement)]

    def holding_statuses_for_table(self, table_id: TableId) -> list[ReservationStatus]:
        statement = (
            select(ReservationModel.status)
            .where(
                ReservationModel.table_id == str(table_id),
                ReservationModel.status.in_(_HOLDING_VALUES),
            )
            .distinct()
        )
        return [ReservationStatus(value) for value in self._session.scalars(statement)]

    def list_for_restaurant(
        self,
        restaurant_id: RestaurantId,
        reservation_date: date | None,
        status: ReservationStatus | None,
    ) -> list[Reservation]:
        statement = select(ReservationModel).where(
            ReservationModel.restaurant_id == str(restaurant_id)
        )
        if reservation_date is not None:
            statement = statement.where(ReservationModel.reservation_date == reservation_date)
        if status is not None:
            statement = statement.where(ReservationModel.status == status.value)
        statement = statement.order_by(
            ReservationModel.reservation_date,
            ReservationModel.reservation_time,
            ReservationModel.id,
        )
        return [self._to_domain(model) for model in self._session.scalars(statement)]

    def expire_stale_holds(self) -> list[ReservationId]:
        rows = self._session.execute(
            text("SELECT expired_id FROM expire_tentative_reservations() AS expired_id")
        ).scalars()
        return [ReservationId(value) for value in rows]

    def decay_past_slots(self, cutoff: datetime) -> list[Reservation]:
        naive_cutoff = cutoff.astimezone(timezone.utc).replace(tzinfo=None)
        slot_start = ReservationModel.reservation_date + ReservationModel.reservation_time
        statement = (
            update(ReservationModel)
            .where(
                ReservationModel.status.in_(_HOLDING_VALUES),
                slot_start < naive_cutoff,
            )
            .values(status=ReservationStatus.EXPIRED.value, updated_at=func.now())
            .returning(ReservationModel)
        )
        models = self._session.scalars(
            statement, execution_options={"synchronize_session": False}
        ).all()
        return [self._to_domain(model) for model in models]

    def _flush(self, payment_reference: str | None) -> None:
        try:
            self._session.flush()
        except IntegrityError as exc:
            raise translate_integrity_error(exc, payment_reference) from exc

    @staticmethod
    def _apply(model: ReservationModel, reservation: Reservation) -> None:
        model.table_id = str(reservation.table_id) if reservation.table_id else None
        model.status = reservation.status.value
        model.expires_at = reservation.expires_at
        model.confirmed_at = reservation.confirmed_at
        model.arrival_time = reservation.arrival_time
        model.payment_reference = (
            str(reservation.payment_reference) if reservation.payment_reference else None
        )
        model.has_pre_order = reservation.has_pre_order
        model.kitchen_notified = reservation.kitchen_notified
        model.special_requests = reservation.special_requests
        model.updated_at = reservation.updated_at

    def _to_model(self, reservation: Reservation) -> ReservationModel:
        model = ReservationModel(
            id=str(reservation.reservation_id),
            restaurant_id=str(reservation.restaurant_id),
            user_id=str(reservation.user_id) if reservation.user_id else None,
            customer_name=reservation.customer_name,
            customer_phone=reservation.customer_phone,
            customer_email=reservation.customer_email,
            party_size=reservation.party_size,
            reservation_date=reservation.reservation_date,
            reservation_time=reservation.reservation_time,
            created_at=reservation.created_at,
        )
        self._apply(model, reservation)
        return model

    @staticmethod
    def _to_domain(model: ReservationModel) -> Reservation:
        return Reservation(
            reservation_id=ReservationId(model.id),
            restaurant_id=RestaurantId(model.restaurant_id),
            table_id=TableId(model.table_id) if model.table_id else None,
            user_id=UserId(model.user_id) if model.user_id else None,
            customer_name=model.customer_name,
            customer_phone=model.customer_phone,
            customer_email=model.customer_email,
            party_size=model.party_size,
            reservation_date=model.reservation_date,
            reservation_time=model.reservation_time,
            special_requests=model.special_requests,
            status=ReservationStatus(model.status),
            expires_at=_aware(model.expires_at),
            created_at=_aware(model.created_at),
            updated_at=_aware(model.updated_at),
            confirmed_at=_aware(model.confirmed_at),
            arrival_time=_aware(model.arrival_time),
            payment_reference=(
                PaymentReference(model.payment_reference) if model.payment_reference else None
            ),
            has_pre_order=model.has_pre_order,
            kitchen_notified=model.kitchen_notified,
        )
