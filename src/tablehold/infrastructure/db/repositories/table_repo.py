from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from tablehold.application.ports.repositories import TableRepository
from tablehold.domain.common.ids import RestaurantId, TableId
from tablehold.domain.table.entities import Table, TableStatus
from tablehold.infrastructure.db.models.catalog import TableModel


class SqlAlchemyTableRepository(TableRepository):
    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, table_id: TableId, restaurant_id: RestaurantId) -> Table | None:
        return self._fetch(table_id, restaurant_id, lock=False)

    def get_for_update(self, table_id: TableId, restaurant_id: RestaurantId) -> Table | None:
        return self._fetch(table_id, restaurant_id, lock=True)

    def set_status(self, table_id: TableId, status: TableStatus, now: datetime) -> None:
        statement = (
            update(TableModel)
            .where(TableModel.id == str(table_id), TableModel.status != status.value)
            .values(status=status.value, updated_at=now)
        )
        self._session.execute(statement)

    def _fetch(self, table_id: TableId, restaurant_id: RestaurantId, lock: bool) -> Table | None:
        statement = select(TableModel).where(
            TableModel.id == str(table_id),
            TableModel.restaurant_id == str(restaurant_id),
        )
        if lock:
            statement = statement.with_for_update().execution_options(populate_existing=True)
        model = self._session.execute(statement).scalar_one_or_none()
        if model is None:
            return None
        return Table(
            table_id=TableId(model.id),
            restaurant_id=RestaurantId(model.restaurant_id),
            label=model.label,
            capacity=model.capacity,
            status=TableStatus(model.status),
            updated_at=model.updated_at,
        )
