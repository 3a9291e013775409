"""Authoritative pricing and payment verification.

Amounts are always recomputed from the live catalog. Client-supplied prices
never reach this module; only menu item ids and quantities do.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterable, TypeVar
from uuid import uuid4

from tablehold.application.errors import (
    InternalError,
    MenuItemUnavailableError,
    PaymentMismatchError,
    PaymentNotSucceededError,
    PaymentProviderUnavailableError,
    ValidationFailedError,
)
from tablehold.application.metrics.lifecycle import (
    record_payment_mismatch,
    record_verification_skipped,
)
from tablehold.application.ports.payments import (
    PaymentHandle,
    PaymentProvider,
    PaymentProviderError,
    PaymentRecord,
    RefundRecord,
)
from tablehold.application.ports.repositories import MenuRepository
from tablehold.application.ports.unit_of_work import UnitOfWorkFactory
from tablehold.domain.common.ids import MenuItemId
from tablehold.domain.common.money import Money
from tablehold.domain.menu.entities import MenuItem

if TYPE_CHECKING:
    from tablehold.application.use_cases.reservation_intent import ReservationIntents
    from tablehold.application.use_cases.reservation_lifecycle import ReservationLifecycle

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CartLine:
    menu_item_id: str
    quantity: int
    special_instructions: str | None = None


@dataclass(frozen=True)
class PricedLine:
    menu_item: MenuItem
    quantity: int
    subtotal: Money
    special_instructions: str | None = None


@dataclass(frozen=True)
class Quote:
    restaurant_id: str
    lines: list[PricedLine]
    subtotal: Money
    tip: Money
    total: Money
    items_hash: str


@dataclass(frozen=True)
class CreatedPayment:
    handle: PaymentHandle
    quote: Quote
    reservation_id: str | None


def _id_sort_key(menu_item_id: str) -> tuple[int, int, str]:
    if menu_item_id.isdigit():
        return (0, int(menu_item_id), "")
    return (1, 0, menu_item_id)


def normalize_items(items: Iterable[CartLine]) -> list[tuple[str, int]]:
    merged: dict[str, int] = {}
    for item in items:
        key = str(item.menu_item_id).strip()
        if not key or item.quantity < 1:
            continue
        merged[key] = merged.get(key, 0) + item.quantity
    return sorted(merged.items(), key=lambda pair: _id_sort_key(pair[0]))


def compute_items_hash(items: Iterable[CartLine]) -> str:
    material = "|".join(f"{item_id}:{quantity}" for item_id, quantity in normalize_items(items))
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def price_cart(
    menu: MenuRepository,
    restaurant_id: str,
    items: list[CartLine],
    tip_cents: int,
    currency: str,
) -> Quote:
    if not items:
        raise ValidationFailedError("order must contain at least one item", code="ITEMS_REQUIRED")
    if tip_cents < 0:
        raise ValidationFailedError("tip must be >= 0", code="INVALID_TIP")
    for item in items:
        if item.quantity < 1:
            raise ValidationFailedError(
                "quantity must be >= 1",
                code="INVALID_QUANTITY",
                details={"menuItemId": item.menu_item_id},
            )

    catalog = menu.get_items(restaurant_id, [MenuItemId(item.menu_item_id) for item in items])
    lines: list[PricedLine] = []
    subtotal = Money.zero(currency)
    for item in items:
        menu_item = catalog.get(MenuItemId(item.menu_item_id))
        if menu_item is None:
            raise MenuItemUnavailableError(
                f"menu item {item.menu_item_id} does not exist",
                details={"menuItemId": item.menu_item_id},
            )
        if not menu_item.is_available:
            raise MenuItemUnavailableError(
                f"menu item {menu_item.name} is unavailable",
                details={"menuItemId": item.menu_item_id},
            )
        line_subtotal = menu_item.line_price(item.quantity)
        try:
            subtotal = subtotal.plus(line_subtotal)
        except ValueError as exc:
            raise ValidationFailedError(str(exc), code="CURRENCY_MISMATCH") from exc
        lines.append(
            PricedLine(
                menu_item=menu_item,
                quantity=item.quantity,
                subtotal=line_subtotal,
                special_instructions=item.special_instructions,
            )
        )

    tip = Money(amount_cents=tip_cents, currency=currency)
    return Quote(
        restaurant_id=restaurant_id,
        lines=lines,
        subtotal=subtotal,
        tip=tip,
        total=subtotal.plus(tip),
        items_hash=compute_items_hash(items),
    )


def check_payment(record: PaymentRecord, expected_total: Money, items: list[CartLine]) -> None:
    """Raise unless the provider record matches the recomputed total and cart."""
    if not record.succeeded:
        raise PaymentNotSucceededError(
            f"payment not successful (status: {record.status})",
            details={"paymentReference": record.payment_reference, "status": record.status},
        )
    if (
        record.amount_cents != expected_total.amount_cents
        or record.currency.upper() != expected_total.currency
    ):
        record_payment_mismatch("amount")
        raise PaymentMismatchError(
            "authorized amount does not match the order total",
            code="AMOUNT_MISMATCH",
            details={
                "paymentReference": record.payment_reference,
                "expectedCents": expected_total.amount_cents,
                "authorizedCents": record.amount_cents,
                "expectedCurrency": expected_total.currency,
                "authorizedCurrency": record.currency.upper(),
            },
        )
    items_hash = record.metadata.get("items_hash")
    if items_hash and items_hash != compute_items_hash(items):
        record_payment_mismatch("items_hash")
        raise PaymentMismatchError(
            "order contents do not match the paid cart",
            code="ITEMS_HASH_MISMATCH",
            details={"paymentReference": record.payment_reference},
        )


class PaymentVerificationGateway:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        provider: PaymentProvider | None,
        currency: str,
        allow_unverified: bool = False,
        lifecycle: ReservationLifecycle | None = None,
        intents: ReservationIntents | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._provider = provider
        self._currency = currency.upper()
        self._allow_unverified = allow_unverified
        self._lifecycle = lifecycle
        self._intents = intents

    @property
    def currency(self) -> str:
        return self._currency

    def quote(self, restaurant_id: str, items: list[CartLine], tip_cents: int = 0) -> Quote:
        with self._uow_factory() as uow:
            return price_cart(uow.menu, restaurant_id, items, tip_cents, self._currency)

    def create_payment(
        self,
        restaurant_id: str,
        items: list[CartLine],
        tip_cents: int = 0,
        reservation_id: str | None = None,
        reservation_intent: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> CreatedPayment:
        if reservation_id and self._lifecycle is not None:
            self._lifecycle.verify_availability(reservation_id, restaurant_id=restaurant_id)
        if reservation_intent and self._intents is not None:
            self._intents.verify_intent(reservation_intent)

        quote = self.quote(restaurant_id, items, tip_cents)
        if quote.total.amount_cents <= 0:
            raise ValidationFailedError("invalid order amount", code="INVALID_AMOUNT")

        provider_metadata = {str(key): str(value) for key, value in (metadata or {}).items()}
        provider_metadata.update(
            {
                "restaurant_id": restaurant_id,
                "subtotal_cents": str(quote.subtotal.amount_cents),
                "tip_cents": str(quote.tip.amount_cents),
                "items_hash": quote.items_hash,
            }
        )
        if reservation_id:
            provider_metadata["reservation_id"] = reservation_id
        if reservation_intent:
            provider_metadata["reservation_intent"] = reservation_intent

        provider = self._require_provider()
        if provider is None:
            handle = PaymentHandle(
                payment_reference=f"unverified_{uuid4().hex}",
                client_secret=None,
                amount_cents=quote.total.amount_cents,
                currency=quote.total.currency,
            )
        else:
            handle = self._call(
                lambda: provider.create_payment(
                    quote.total.amount_cents, quote.total.currency, provider_metadata
                )
            )
        logger.info(
            "payment_created",
            extra={
                "restaurant_id": restaurant_id,
                "payment_reference": handle.payment_reference,
                "amount_cents": handle.amount_cents,
                "reservation_id": reservation_id,
            },
        )
        return CreatedPayment(handle=handle, quote=quote, reservation_id=reservation_id)

    def retrieve(self, payment_reference: str) -> PaymentRecord | None:
        """Return the provider record, or None when verification is skipped."""
        provider = self._require_provider()
        if provider is None:
            record_verification_skipped()
            logger.warning(
                "payment_verification_skipped",
                extra={"payment_reference": payment_reference},
            )
            return None
        return self._call(lambda: provider.retrieve_payment(payment_reference))

    def verify_payment(
        self,
        payment_reference: str,
        expected_total: Money,
        items: list[CartLine],
    ) -> PaymentRecord | None:
        record = self.retrieve(payment_reference)
        if record is not None:
            check_payment(record, expected_total, items)
        return record

    def refund(
        self,
        payment_reference: str,
        amount_cents: int | None = None,
        reason: str | None = None,
    ) -> RefundRecord:
        provider = self._require_provider()
        if provider is None:
            raise InternalError(
                "payment provider is not configured",
                code="PAYMENT_PROVIDER_UNCONFIGURED",
            )
        return self._call(lambda: provider.refund_payment(payment_reference, amount_cents, reason))

    def _require_provider(self) -> PaymentProvider | None:
        if self._provider is not None:
            return self._provider
        if self._allow_unverified:
            return None
        raise InternalError(
            "payment provider is not configured",
            code="PAYMENT_PROVIDER_UNCONFIGURED",
        )

    @staticmethod
    def _call(operation: Callable[[], T]) -> T:
        try:
            return operation()
        except PaymentProviderError as exc:
            if exc.transient:
                raise PaymentProviderUnavailableError(str(exc)) from exc
            raise ValidationFailedError(str(exc), code="PAYMENT_PROVIDER_REJECTED") from exc
