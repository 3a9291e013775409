from __future__ import annotations

from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from tablehold.application.ports.repositories import MenuRepository
from tablehold.domain.common.ids import MenuItemId, RestaurantId
from tablehold.domain.common.money import Money
from tablehold.domain.menu.entities import MenuItem
from tablehold.infrastructure.db.models.catalog import MenuItemModel, MenuModel


class SqlAlchemyMenuRepository(MenuRepository):
    """Reads prices and availability from the latest menu version."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get_items(
        self,
        restaurant_id: RestaurantId,
        item_ids: Iterable[MenuItemId],
    ) -> dict[MenuItemId, MenuItem]:
        wanted = sorted({str(item_id) for item_id in item_ids})
        if not wanted:
            return {}

        latest_menu = (
            select(MenuModel.id)
            .where(MenuModel.restaurant_id == str(restaurant_id))
            .order_by(MenuModel.version.desc())
            .limit(1)
            .scalar_subquery()
        )
        statement = select(MenuItemModel).where(
            MenuItemModel.menu_id == latest_menu,
            MenuItemModel.id.in_(wanted),
        )
        return {
            MenuItemId(model.id): MenuItem(
                item_id=MenuItemId(model.id),
                restaurant_id=restaurant_id,
                name=model.name,
                price_money=Money(amount_cents=model.price_cents, currency=model.currency),
                is_available=model.is_available,
            )
            for model in self._session.scalars(statement)
        }
