from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from tablehold.application.ports.repositories import OrderRepository
from tablehold.domain.common.ids import (
    MenuItemId,
    OrderId,
    OrderItemId,
    PaymentReference,
    ReservationId,
    RestaurantId,
    TableId,
)
from tablehold.domain.common.money import Money
from tablehold.domain.order.entities import Order, OrderItem, OrderStatus, OrderType
from tablehold.infrastructure.db.models.order import OrderItemModel, OrderModel
from tablehold.infrastructure.db.repositories.integrity import translate_integrity_error


class SqlAlchemyOrderRepository(OrderRepository):
    def __init__(self, session: Session) -> None:
        self._session = session

    def add(self, order: Order) -> None:
        self._session.add(self._to_model(order))
        try:
            self._session.flush()
        except IntegrityError as exc:
            raise translate_integrity_error(exc, order.payment_reference) from exc

    def get(self, order_id: OrderId) -> Order | None:
        statement = (
            select(OrderModel)
            .options(selectinload(OrderModel.items))
            .where(OrderModel.id == str(order_id))
        )
        model = self._session.execute(statement).scalar_one_or_none()
        return self._to_domain(model) if model is not None else None

    def get_for_update(self, order_id: OrderId) -> Order | None:
        statement = (
            select(OrderModel)
            .options(selectinload(OrderModel.items))
            .where(OrderModel.id == str(order_id))
            .with_for_update(of=OrderModel)
            .execution_options(populate_existing=True)
        )
        model = self._session.execute(statement).scalar_one_or_none()
        return self._to_domain(model) if model is not None else None

    def get_by_payment_reference(self, payment_reference: PaymentReference) -> Order | None:
        statement = (
            select(OrderModel)
            .options(selectinload(OrderModel.items))
            .where(OrderModel.payment_reference == str(payment_reference))
        )
        model = self._session.execute(statement).scalar_one_or_none()
        return self._to_domain(model) if model is not None else None

    def find_pre_order(self, reservation_id: ReservationId) -> Order | None:
        statement = (
            select(OrderModel)
            .options(selectinload(OrderModel.items))
            .where(
                OrderModel.reservation_id == str(reservation_id),
                OrderModel.order_type == OrderType.PRE_ORDER.value,
                OrderModel.status != OrderStatus.CANCELLED.value,
            )
            .order_by(OrderModel.created_at.desc())
            .limit(1)
        )
        model = self._session.execute(statement).scalar_one_or_none()
        return self._to_domain(model) if model is not None else None

    def update_status(self, order_id: OrderId, status: OrderStatus, now: datetime) -> None:
        self._session.execute(
            update(OrderModel)
            .where(OrderModel.id == str(order_id))
            .values(status=status.value, updated_at=now)
        )

    def _to_model(self, order: Order) -> OrderModel:
        model = OrderModel(
            id=str(order.order_id),
            restaurant_id=str(order.restaurant_id),
            table_id=str(order.table_id) if order.table_id else None,
            reservation_id=str(order.reservation_id) if order.reservation_id else None,
            order_type=order.order_type.value,
            status=order.status.value,
            payment_reference=str(order.payment_reference),
            subtotal_cents=order.subtotal.amount_cents,
            tip_cents=order.tip.amount_cents,
            total_cents=order.total.amount_cents,
            currency=order.total.currency,
            customer_notes=order.customer_notes,
            created_at=order.created_at,
            updated_at=order.created_at,
        )
        model.items = [
            OrderItemModel(
                id=str(item.item_id),
                order_id=str(order.order_id),
                menu_item_id=str(item.menu_item_id),
                name=item.name,
                quantity=item.quantity,
                unit_price_cents=item.unit_price.amount_cents,
                subtotal_cents=item.subtotal.amount_cents,
                currency=item.unit_price.currency,
                special_instructions=item.special_instructions,
            )
            for item in order.items
        ]
        return model

    @staticmethod
    def _to_domain(model: OrderModel) -> Order:
        created_at = model.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return Order(
            order_id=OrderId(model.id),
            restaurant_id=RestaurantId(model.restaurant_id),
            table_id=TableId(model.table_id) if model.table_id else None,
            reservation_id=ReservationId(model.reservation_id) if model.reservation_id else None,
            order_type=OrderType(model.order_type),
            status=OrderStatus(model.status),
            payment_reference=PaymentReference(model.payment_reference),
            items=[
                OrderItem(
                    item_id=OrderItemId(item.id),
                    menu_item_id=MenuItemId(item.menu_item_id),
                    name=item.name,
                    unit_price=Money(amount_cents=item.unit_price_cents, currency=item.currency),
                    quantity=item.quantity,
                    subtotal=Money(amount_cents=item.subtotal_cents, currency=item.currency),
                    special_instructions=item.special_instructions,
                )
                for item in model.items
            ],
            subtotal=Money(amount_cents=model.subtotal_cents, currency=model.currency),
            tip=Money(amount_cents=model.tip_cents, currency=model.currency),
            total=Money(amount_cents=model.total_cents, currency=model.currency),
            created_at=created_at,
            customer_notes=model.customer_notes,
        )
