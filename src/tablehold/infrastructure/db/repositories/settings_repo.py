from __future__ import annotations

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from tablehold.application.ports.repositories import ReservationSettingsRow, SettingsRepository
from tablehold.infrastructure.db.models.catalog import ReservationSettingsModel
from tablehold.infrastructure.db.session import get_engine


class SqlAlchemySettingsRepository(SettingsRepository):
    def __init__(self, engine: Engine | None = None) -> None:
        self._engine = engine or get_engine()

    def get_reservation_settings(self, restaurant_id: str | None) -> ReservationSettingsRow | None:
        statement = select(ReservationSettingsModel)
        if restaurant_id is None:
            statement = statement.where(ReservationSettingsModel.restaurant_id.is_(None))
        else:
            statement = statement.where(ReservationSettingsModel.restaurant_id == str(restaurant_id))
        statement = statement.order_by(ReservationSettingsModel.updated_at.desc()).limit(1)

        with Session(self._engine) as session:
            model = session.execute(statement).scalar_one_or_none()
        if model is None:
            return None
        return ReservationSettingsRow(
            reservation_duration_minutes=model.reservation_duration_minutes,
            cancellation_window_hours=model.cancellation_window_hours,
        )
