from __future__ import annotations

import logging

from tablehold.application.dto.responses import OrderResponse
from tablehold.application.errors import (
    InvalidTransitionError,
    OrderNotFoundError,
    ValidationFailedError,
)
from tablehold.application.mappers.event_envelope import order_payload
from tablehold.application.mappers.order_mapper import to_order_response
from tablehold.application.metrics.lifecycle import record_order_transition
from tablehold.application.ports.unit_of_work import UnitOfWorkFactory
from tablehold.application.services.notifications import (
    ADMIN_TOPIC,
    KITCHEN_TOPIC,
    enqueue_event,
    table_topic,
)
from tablehold.application.use_cases.context import NO_TRACE, Clock, TraceContext, utc_now
from tablehold.domain.common.ids import OrderId
from tablehold.domain.order.entities import OrderStatus, OrderTransitionError

logger = logging.getLogger(__name__)


class UpdateOrderStatus:
    def __init__(self, uow_factory: UnitOfWorkFactory, clock: Clock = utc_now) -> None:
        self._uow_factory = uow_factory
        self._clock = clock

    def execute(
        self,
        order_id: str,
        target: str,
        trace_ctx: TraceContext = NO_TRACE,
    ) -> OrderResponse:
        try:
            target_status = OrderStatus(target)
        except ValueError as exc:
            raise ValidationFailedError(
                f"invalid status: {target}",
                code="INVALID_STATUS",
                details={"allowed": [status.value for status in OrderStatus]},
            ) from exc

        with self._uow_factory() as uow:
            order = uow.orders.get_for_update(OrderId(order_id))
            if order is None:
                raise OrderNotFoundError(f"order {order_id} not found")
            try:
                updated = order.transition_to(target_status)
            except OrderTransitionError as exc:
                raise InvalidTransitionError(
                    str(exc),
                    details={"status": order.status.value, "target": target_status.value},
                ) from exc

            now = self._clock()
            uow.orders.update_status(updated.order_id, updated.status, now)
            topics = [KITCHEN_TOPIC, ADMIN_TOPIC]
            if updated.table_id is not None:
                topics.append(table_topic(updated.table_id))
            payload = order_payload(updated)
            for topic in topics:
                enqueue_event(
                    uow.outbox,
                    restaurant_id=updated.restaurant_id,
                    topic=topic,
                    event_type="order-updated",
                    payload=payload,
                    occurred_at=now,
                    trace_ctx=trace_ctx,
                )
            uow.commit()

        record_order_transition(order.status, target_status)
        logger.info(
            "order_status_updated",
            extra={
                "order_id": order_id,
                "from_status": order.status.value,
                "to_status": target_status.value,
            },
        )
        return to_order_response(updated)
