from __future__ import annotations

import sys
from datetime import timedelta
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[3] / "src"))
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from fakes import make_reservation, uow_factory

from tablehold.application.errors import (
    InternalError,
    MenuItemUnavailableError,
    PaymentMismatchError,
    PaymentNotSucceededError,
    PaymentProviderUnavailableError,
    ValidationFailedError,
)
from tablehold.application.ports.payments import PaymentProviderError, PaymentRecord
from tablehold.application.services.payment_gateway import (
    CartLine,
    PaymentVerificationGateway,
    check_payment,
    compute_items_hash,
    normalize_items,
)
from tablehold.domain.common.money import Money

CART = [CartLine("itm_001", 2), CartLine("itm_003", 1)]


def _record(amount_cents: int = 3890, status: str = "succeeded", **metadata: str) -> PaymentRecord:
    return PaymentRecord(
        payment_reference="pi_1",
        status=status,
        amount_cents=amount_cents,
        currency="usd",
        metadata=dict(metadata),
    )


def test_items_hash_ignores_order_and_merges_duplicates() -> None:
    first = compute_items_hash([CartLine("itm_002", 1), CartLine("itm_001", 2)])
    second = compute_items_hash([CartLine("itm_001", 1), CartLine("itm_002", 1), CartLine("itm_001", 1)])
    assert first == second
    assert first != compute_items_hash([CartLine("itm_001", 1), CartLine("itm_002", 1)])


def test_numeric_ids_sort_numerically() -> None:
    assert normalize_items([CartLine("10", 1), CartLine("9", 2), CartLine("itm_a", 1)]) == [
        ("9", 2),
        ("10", 1),
        ("itm_a", 1),
    ]


def test_quote_uses_catalog_prices(container) -> None:
    quote = container.gateway.quote("rst_001", CART, tip_cents=500)

    assert quote.subtotal == Money(3890, "USD")
    assert quote.total == Money(4390, "USD")
    assert [line.subtotal.amount_cents for line in quote.lines] == [2900, 990]
    assert quote.items_hash == compute_items_hash(CART)


def test_quote_rejects_unavailable_and_unknown_items(container) -> None:
    with pytest.raises(MenuItemUnavailableError):
        container.gateway.quote("rst_001", [CartLine("itm_004", 1)])
    with pytest.raises(MenuItemUnavailableError) as exc_info:
        container.gateway.quote("rst_001", [CartLine("itm_999", 1)])
    assert exc_info.value.details == {"menuItemId": "itm_999"}


def test_quote_rejects_empty_cart_and_negative_tip(container) -> None:
    with pytest.raises(ValidationFailedError) as exc_info:
        container.gateway.quote("rst_001", [])
    assert exc_info.value.code == "ITEMS_REQUIRED"
    with pytest.raises(ValidationFailedError) as exc_info:
        container.gateway.quote("rst_001", CART, tip_cents=-1)
    assert exc_info.value.code == "INVALID_TIP"


def test_create_payment_sends_server_total_and_metadata(container, provider) -> None:
    created = container.gateway.create_payment("rst_001", CART, tip_cents=110)

    amount, currency, metadata = provider.created[0]
    assert amount == 4000
    assert currency == "USD"
    assert metadata["items_hash"] == compute_items_hash(CART)
    assert metadata["subtotal_cents"] == "3890"
    assert metadata["tip_cents"] == "110"
    assert created.handle.payment_reference == "pi_0001"


def test_create_payment_for_reservation_extends_hold(container, provider, store, clock) -> None:
    store.reservations["res_001"] = make_reservation()
    clock.advance(minutes=12)

    container.gateway.create_payment("rst_001", CART, reservation_id="res_001")

    assert provider.created[0][2]["reservation_id"] == "res_001"
    assert store.reservations["res_001"].expires_at == clock.now + timedelta(minutes=5)


def test_check_payment_rejects_amount_mismatch() -> None:
    with pytest.raises(PaymentMismatchError) as exc_info:
        check_payment(_record(amount_cents=100), Money(3890, "USD"), CART)
    assert exc_info.value.code == "AMOUNT_MISMATCH"
    assert exc_info.value.details["expectedCents"] == 3890


def test_check_payment_rejects_currency_mismatch() -> None:
    with pytest.raises(PaymentMismatchError):
        check_payment(_record(), Money(3890, "EUR"), CART)


def test_check_payment_rejects_different_cart() -> None:
    record = _record(items_hash=compute_items_hash([CartLine("itm_002", 1)]))
    with pytest.raises(PaymentMismatchError) as exc_info:
        check_payment(record, Money(3890, "USD"), CART)
    assert exc_info.value.code == "ITEMS_HASH_MISMATCH"


def test_check_payment_requires_success() -> None:
    with pytest.raises(PaymentNotSucceededError):
        check_payment(_record(status="processing"), Money(3890, "USD"), CART)


def test_check_payment_accepts_matching_record() -> None:
    check_payment(_record(items_hash=compute_items_hash(CART)), Money(3890, "USD"), CART)


def test_transient_provider_failure_is_internal(container, provider) -> None:
    provider.error = PaymentProviderError("timeout", transient=True)
    with pytest.raises(PaymentProviderUnavailableError):
        container.gateway.retrieve("pi_1")


def test_permanent_provider_failure_is_validation(container, provider) -> None:
    provider.error = PaymentProviderError("card declined")
    with pytest.raises(ValidationFailedError) as exc_info:
        container.gateway.retrieve("pi_1")
    assert exc_info.value.code == "PAYMENT_PROVIDER_REJECTED"


def test_missing_provider_is_internal_error(store) -> None:
    gateway = PaymentVerificationGateway(uow_factory(store), None, "USD")
    with pytest.raises(InternalError) as exc_info:
        gateway.retrieve("pi_1")
    assert exc_info.value.code == "PAYMENT_PROVIDER_UNCONFIGURED"


def test_unverified_mode_skips_provider(store) -> None:
    gateway = PaymentVerificationGateway(uow_factory(store), None, "USD", allow_unverified=True)

    created = gateway.create_payment("rst_001", CART)

    assert created.handle.payment_reference.startswith("unverified_")
    assert created.handle.amount_cents == 3890
    assert gateway.retrieve(created.handle.payment_reference) is None
