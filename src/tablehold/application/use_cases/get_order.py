from __future__ import annotations

from tablehold.application.dto.responses import OrderResponse
from tablehold.application.errors import OrderNotFoundError
from tablehold.application.mappers.order_mapper import to_order_response
from tablehold.application.ports.unit_of_work import UnitOfWorkFactory
from tablehold.domain.common.ids import OrderId, PaymentReference


class GetOrder:
    def __init__(self, uow_factory: UnitOfWorkFactory) -> None:
        self._uow_factory = uow_factory

    def execute(self, order_id: str) -> OrderResponse:
        with self._uow_factory() as uow:
            order = uow.orders.get(OrderId(order_id))
        if order is None:
            raise OrderNotFoundError(f"order {order_id} not found")
        return to_order_response(order)

    def by_payment_reference(self, payment_reference: str) -> OrderResponse:
        with self._uow_factory() as uow:
            order = uow.orders.get_by_payment_reference(PaymentReference(payment_reference))
        if order is None:
            raise OrderNotFoundError(f"no order for payment {payment_reference}")
        return to_order_response(order)
