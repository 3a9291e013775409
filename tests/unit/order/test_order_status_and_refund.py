from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[3] / "src"))
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from fakes import NOW, make_reservation

from tablehold.application.errors import (
    InvalidTransitionError,
    OrderNotFoundError,
    ValidationFailedError,
)
from tablehold.application.services.payment_gateway import CartLine
from tablehold.application.use_cases.commit_order import OrderDraft
from tablehold.domain.order.entities import OrderStatus, OrderType
from tablehold.domain.reservation.entities import ReservationStatus
from tablehold.domain.table.entities import TableStatus


def _commit(container, reference: str = "pi_1") -> str:
    draft = OrderDraft(
        restaurant_id="rst_001",
        order_type=OrderType.DINE_IN,
        items=[CartLine("itm_002", 1)],
        table_id="tbl_003",
    )
    return container.orders.commit(draft, reference, None).order.orderId


def test_order_moves_through_kitchen_states(container, store) -> None:
    order_id = _commit(container)
    store.outbox.clear()

    container.update_order_status.execute(order_id, "preparing")
    response = container.update_order_status.execute(order_id, "ready")

    assert response.status == "ready"
    assert store.orders[order_id].status == OrderStatus.READY
    topics = [message.topic for message in store.outbox_events()]
    assert topics.count("kitchen") == 2
    assert topics.count("table-tbl_003") == 2
    assert json.loads(store.outbox_events("admin")[-1].body)["payload"]["status"] == "ready"


def test_order_cannot_skip_states(container) -> None:
    order_id = _commit(container)

    with pytest.raises(InvalidTransitionError) as exc_info:
        container.update_order_status.execute(order_id, "completed")
    assert exc_info.value.details == {"status": "pending", "target": "completed"}


def test_order_status_must_be_known(container) -> None:
    order_id = _commit(container)
    with pytest.raises(ValidationFailedError) as exc_info:
        container.update_order_status.execute(order_id, "eaten")
    assert exc_info.value.code == "INVALID_STATUS"


def test_missing_order(container) -> None:
    with pytest.raises(OrderNotFoundError):
        container.update_order_status.execute("ord_missing", "preparing")
    with pytest.raises(OrderNotFoundError):
        container.get_order.execute("ord_missing")


def test_get_order_by_payment_reference(container) -> None:
    order_id = _commit(container, "pi_lookup")
    assert container.get_order.by_payment_reference("pi_lookup").orderId == order_id
    assert container.get_order.execute(order_id).paymentReference == "pi_lookup"


def test_refund_cancels_linked_reservation(container, provider, store) -> None:
    store.reservations["res_001"] = make_reservation()
    created = container.gateway.create_payment(
        "rst_001", [CartLine("itm_001", 1)], reservation_id="res_001"
    )
    reference = created.handle.payment_reference
    provider.succeed(reference)
    container.confirm_payment.execute(reference, reservation_id="res_001")
    assert store.tables["tbl_001"].status == TableStatus.RESERVED

    response = container.refund_payment.execute(reference, reservation_id="res_001")

    assert response.amount.amountCents == 1450
    assert response.reservation.status == "cancelled"
    assert store.reservations["res_001"].status == ReservationStatus.CANCELLED
    assert store.tables["tbl_001"].status == TableStatus.AVAILABLE
    assert provider.refunds == [(reference, None, "requested_by_customer")]
    assert "reservation-refunded" in [m.event_type for m in store.outbox_events("admin")]


def test_refund_for_completed_reservation_is_refused_before_money_moves(
    container, provider, store
) -> None:
    created = container.gateway.create_payment("rst_001", [CartLine("itm_001", 1)])
    reference = created.handle.payment_reference
    provider.succeed(reference)
    store.reservations["res_001"] = make_reservation(
        status=ReservationStatus.COMPLETED, payment_reference=reference
    )

    with pytest.raises(InvalidTransitionError) as exc_info:
        container.refund_payment.execute(reference, reservation_id="res_001")

    assert exc_info.value.details == {"status": "completed"}
    assert provider.refunds == []
    assert store.reservations["res_001"].status == ReservationStatus.COMPLETED


def test_refund_with_foreign_payment_reference_is_refused(container, provider, store) -> None:
    created = container.gateway.create_payment("rst_001", [CartLine("itm_001", 1)])
    reference = created.handle.payment_reference
    provider.succeed(reference)
    store.reservations["res_001"] = make_reservation(
        status=ReservationStatus.CONFIRMED, payment_reference="pi_someone_else"
    )

    with pytest.raises(ValidationFailedError) as exc_info:
        container.refund_payment.execute(reference, reservation_id="res_001")

    assert exc_info.value.code == "PAYMENT_RESERVATION_MISMATCH"
    assert provider.refunds == []
    assert store.reservations["res_001"].status == ReservationStatus.CONFIRMED


def test_refund_reports_reservation_that_moved_on_during_the_call(
    container, provider, store, monkeypatch
) -> None:
    store.reservations["res_001"] = make_reservation()
    created = container.gateway.create_payment(
        "rst_001", [CartLine("itm_001", 1)], reservation_id="res_001"
    )
    reference = created.handle.payment_reference
    provider.succeed(reference)
    container.confirm_payment.execute(reference, reservation_id="res_001")
    issue_refund = provider.refund_payment

    def refund_while_guest_finishes(*args):
        finished = (
            store.reservations["res_001"]
            .transition_to(ReservationStatus.SEATED, NOW)
            .transition_to(ReservationStatus.COMPLETED, NOW)
        )
        store.reservations["res_001"] = finished
        return issue_refund(*args)

    monkeypatch.setattr(provider, "refund_payment", refund_while_guest_finishes)

    response = container.refund_payment.execute(reference, reservation_id="res_001")

    assert response.refundId == "re_0001"
    assert response.reservation.status == "completed"
    assert provider.refunds == [(reference, None, "requested_by_customer")]
    assert "reservation-refunded" not in [m.event_type for m in store.outbox_events("admin")]


def test_partial_refund_without_reservation(container, provider) -> None:
    created = container.gateway.create_payment("rst_001", [CartLine("itm_002", 2)])
    reference = created.handle.payment_reference
    provider.succeed(reference)

    response = container.refund_payment.execute(reference, amount_cents=500, reason="duplicate")

    assert response.amount.amountCents == 500
    assert response.reservation is None
    assert provider.refunds == [(reference, 500, "duplicate")]
