from __future__ import annotations

from dataclasses import dataclass

from tablehold.domain.common.ids import MenuItemId, RestaurantId
from tablehold.domain.common.money import Money


@dataclass(frozen=True)
class MenuItem:
    """Catalog entry as the ordering flow sees it: read-only, priced server-side."""

    item_id: MenuItemId
    restaurant_id: RestaurantId
    name: str
    price_money: Money
    is_available: bool

    def __post_init__(self) -> None:
        if not self.name.strip():
            raise ValueError("menu item name must be non-empty")

    def line_price(self, quantity: int) -> Money:
        if quantity < 1:
            raise ValueError("quantity must be >= 1")
        return self.price_money.times(quantity)
