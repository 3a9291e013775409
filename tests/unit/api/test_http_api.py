from __future__ import annotations

import sys
from pathlib import Path
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).resolve().parents[3] / "src"))
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from fakes import make_reservation, make_settings

import tablehold.api.routes.health as health_route
from tablehold.api.main import create_app
from tablehold.application.ports.payments import PaymentProviderError
from tablehold.application.services.payment_gateway import CartLine
from tablehold.application.use_cases.commit_order import OrderDraft
from tablehold.domain.order.entities import OrderType
from tablehold.domain.reservation.entities import ReservationStatus


@pytest.fixture
def client(container) -> Iterator[TestClient]:
    app = create_app(settings=make_settings(), container=container, run_background_tasks=False)
    with TestClient(app) as test_client:
        yield test_client


def test_live_health_endpoint(client) -> None:
    response = client.get("/health/live")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_ready_health_endpoint_healthy_with_mocks(client, monkeypatch) -> None:
    monkeypatch.setattr(health_route, "ping_database", lambda timeout_seconds=1.0: True)
    monkeypatch.setattr(health_route, "ping_redis", lambda timeout_seconds=1.0: True)

    response = client.get("/health/ready")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_ready_health_endpoint_reports_failed_checks(client, monkeypatch) -> None:
    monkeypatch.setattr(health_route, "ping_database", lambda timeout_seconds=1.0: False)
    monkeypatch.setattr(health_route, "ping_redis", lambda timeout_seconds=1.0: True)

    response = client.get("/health/ready")

    assert response.status_code == 503
    assert response.json()["checks"] == {"postgres": False, "redis": True, "payments": True}


def test_create_reservation_returns_201(client) -> None:
    response = client.post(
        "/v1/reservations",
        json={
            "restaurantId": "rst_001",
            "tableId": "tbl_002",
            "customerName": "Ada Guest",
            "partySize": 4,
            "reservationDate": "2026-10-20",
            "reservationTime": "19:00:00",
        },
        headers={"X-User-Id": "usr_001"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "tentative"
    assert body["userId"] == "usr_001"
    assert body["reservationId"].startswith("res_")


def test_validation_errors_use_error_envelope(client) -> None:
    response = client.post("/v1/reservations", json={"restaurantId": "rst_001"})

    assert response.status_code == 400
    body = response.json()
    assert body["error"]["code"] == "INVALID_REQUEST"
    assert body["requestId"]
    assert response.headers["X-Request-Id"] == body["requestId"]


def test_not_found_maps_to_404(client) -> None:
    response = client.get("/v1/reservations/res_missing", headers={"X-Request-Id": "req-42"})

    assert response.status_code == 404
    assert response.json() == {
        "error": {
            "code": "RESERVATION_NOT_FOUND",
            "message": "reservation not found: res_missing",
            "details": {},
        },
        "requestId": "req-42",
    }


def test_conflict_maps_to_409_with_conflicting_reservation(client, store) -> None:
    store.reservations["res_paid"] = make_reservation(
        "res_paid", status=ReservationStatus.CONFIRMED, table_id="tbl_002"
    )

    response = client.post(
        "/v1/reservations",
        json={
            "restaurantId": "rst_001",
            "tableId": "tbl_002",
            "customerName": "Ada Guest",
            "partySize": 2,
            "reservationDate": "2026-10-20",
            "reservationTime": "19:45:00",
        },
    )

    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "RESERVATION_CONFLICT"
    assert error["details"]["conflictingReservation"]["reservationId"] == "res_paid"


def test_expired_hold_maps_to_410(client, store, clock) -> None:
    store.reservations["res_001"] = make_reservation()
    clock.advance(minutes=20)

    response = client.post("/v1/reservations/res_001/verify")

    assert response.status_code == 410
    assert response.json()["error"]["details"]["expiredMinutesAgo"] == 5


def test_confirm_by_other_user_maps_to_403(client, store) -> None:
    store.reservations["res_001"] = make_reservation(user_id="usr_001")

    response = client.post(
        "/v1/reservations/res_001/confirm",
        json={"paymentReference": "pi_1"},
        headers={"X-User-Id": "usr_002"},
    )

    assert response.status_code == 403


def test_payment_mismatch_maps_to_400(client, provider) -> None:
    created = client.post(
        "/v1/payments",
        json={"restaurantId": "rst_001", "items": [{"menuItemId": "itm_001", "quantity": 1}]},
    )
    assert created.status_code == 201
    reference = created.json()["paymentReference"]
    provider.succeed(reference, amount_cents=1)

    response = client.post(
        "/v1/payments/confirm",
        json={
            "paymentReference": reference,
            "order": {
                "restaurantId": "rst_001",
                "orderType": "takeout",
                "items": [{"menuItemId": "itm_001", "quantity": 1}],
            },
        },
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "AMOUNT_MISMATCH"


def test_quote_endpoint(client) -> None:
    response = client.post(
        "/v1/payments/quote",
        json={
            "restaurantId": "rst_001",
            "items": [{"menuItemId": "itm_002", "quantity": 2}],
            "tipCents": 300,
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["subtotal"] == {"amountCents": 3380, "currency": "USD"}
    assert body["total"] == {"amountCents": 3680, "currency": "USD"}


def test_webhook_with_bad_signature_is_401(client) -> None:
    response = client.post(
        "/v1/webhooks/stripe",
        content=b'{"id":"evt_1"}',
        headers={"stripe-signature": "t=1,v1=bad"},
    )
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "WEBHOOK_SIGNATURE_INVALID"


def test_internal_errors_hide_details(client, provider) -> None:
    provider.error = PaymentProviderError("upstream exploded at 10.0.0.5", transient=True)

    response = client.post(
        "/v1/payments",
        json={"restaurantId": "rst_001", "items": [{"menuItemId": "itm_001", "quantity": 1}]},
    )

    assert response.status_code == 500
    error = response.json()["error"]
    assert error == {"code": "PAYMENT_PROVIDER_UNAVAILABLE", "message": "internal error", "details": {}}


def test_sweeper_stats_endpoint(client) -> None:
    response = client.get("/v1/ops/sweeper")
    assert response.status_code == 200
    assert response.json()["totalRuns"] == 0


def test_metrics_endpoint_exposes_prometheus_text(client) -> None:
    client.get("/health/live")
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "http_requests_total" in response.text


def test_order_status_endpoint(client, container) -> None:
    committed = container.orders.commit(
        OrderDraft("rst_001", OrderType.TAKEOUT, [CartLine("itm_003", 1)]), "pi_9", None
    )
    order_id = committed.order.orderId

    response = client.patch(f"/v1/orders/{order_id}/status", json={"status": "preparing"})
    assert response.status_code == 200
    assert response.json()["status"] == "preparing"

    response = client.get("/v1/payments/pi_9/order")
    assert response.json()["orderId"] == order_id


def test_unsafe_request_id_header_is_replaced(client) -> None:
    response = client.get("/health/live", headers={"X-Request-Id": "bad id with spaces"})
    request_id = response.headers["X-Request-Id"]
    assert request_id != "bad id with spaces"
    assert len(request_id) == 32
