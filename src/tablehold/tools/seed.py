from __future__ import annotations

from typing import Any

from sqlalchemy import inspect
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

from tablehold.infrastructure.db.models.catalog import (
    MenuItemModel,
    MenuModel,
    ReservationSettingsModel,
    RestaurantModel,
    TableModel,
)
from tablehold.infrastructure.db.session import get_engine

RESTAURANT_ID = "rst_001"

MENU_ITEMS: list[dict[str, Any]] = [
    {"id": "itm_001", "name": "Margherita Pizza", "price_cents": 1450, "is_available": True},
    {"id": "itm_002", "name": "Chicken Alfredo", "price_cents": 1690, "is_available": True},
    {"id": "itm_003", "name": "Caesar Salad", "price_cents": 990, "is_available": True},
    {"id": "itm_004", "name": "Tiramisu", "price_cents": 850, "is_available": False},
]

TABLES: list[dict[str, Any]] = [
    {"id": "tbl_001", "label": "T1", "capacity": 2},
    {"id": "tbl_002", "label": "T2", "capacity": 4},
    {"id": "tbl_003", "label": "T3", "capacity": 6},
]


def _upsert(session: Session, model: type, values: dict[str, Any]) -> None:
    session.execute(
        insert(model)
        .values(**values)
        .on_conflict_do_update(
            index_elements=[model.id],
            set_={key: value for key, value in values.items() if key != "id"},
        )
    )


def main() -> None:
    engine = get_engine(timeout_seconds=2.0)
    inspector = inspect(engine)
    required_tables = {"restaurants", "menus", "menu_items", "tables", "reservation_settings"}
    if not required_tables.issubset(set(inspector.get_table_names(schema="public"))):
        print("no schema yet")
        return

    with Session(engine) as session:
        _upsert(session, RestaurantModel, {"id": RESTAURANT_ID, "name": "Downtown Test Kitchen"})
        _upsert(session, MenuModel, {"id": "men_001", "restaurant_id": RESTAURANT_ID, "version": 1})
        for item in MENU_ITEMS:
            _upsert(session, MenuItemModel, {**item, "menu_id": "men_001", "currency": "USD"})
        for table in TABLES:
            _upsert(
                session,
                TableModel,
                {**table, "restaurant_id": RESTAURANT_ID, "status": "available"},
            )

        session.execute(
            insert(ReservationSettingsModel)
            .values(
                restaurant_id=RESTAURANT_ID,
                reservation_duration_minutes=90,
                cancellation_window_hours=12,
            )
            .on_conflict_do_update(
                index_elements=[ReservationSettingsModel.restaurant_id],
                set_={"reservation_duration_minutes": 90, "cancellation_window_hours": 12},
            )
        )

        session.commit()
        print("seed complete")


if __name__ == "__main__":
    main()
