from __future__ import annotations

import sys
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Iterable

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from tablehold.application.ports.outbox import OutboxMessage
from tablehold.application.ports.payments import (
    PaymentHandle,
    PaymentProviderError,
    PaymentRecord,
    RefundRecord,
    WebhookEvent,
    WebhookSignatureError,
)
from tablehold.application.ports.repositories import (
    DuplicatePaymentReferenceError,
    ReservationSettingsRow,
)
from tablehold.domain.common.ids import (
    MenuItemId,
    OrderId,
    PaymentReference,
    ReservationId,
    RestaurantId,
    TableId,
    UserId,
)
from tablehold.domain.common.money import Money
from tablehold.domain.menu.entities import MenuItem
from tablehold.domain.order.entities import Order, OrderStatus, OrderType
from tablehold.domain.reservation.entities import (
    TABLE_HOLDING_STATUSES,
    Reservation,
    ReservationStatus,
)
from tablehold.domain.table.entities import Table, TableStatus
from tablehold.infrastructure.config import AppSettings

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
RESTAURANT_ID = RestaurantId("rst_001")


class Clock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class InMemoryStore:
    """Committed state shared by every fake unit of work."""

    def __init__(self, clock: Callable[[], datetime]) -> None:
        self.clock = clock
        self.reservations: dict[str, Reservation] = {}
        self.tables: dict[str, Table] = {}
        self.orders: dict[str, Order] = {}
        self.menu_items: dict[str, MenuItem] = {}
        self.outbox: dict[str, OutboxMessage] = {}
        self.commits = 0
        self.before_commit: Callable[[], None] | None = None

    def outbox_events(self, topic: str | None = None) -> list[OutboxMessage]:
        return [
            message
            for message in self.outbox.values()
            if topic is None or message.topic == topic
        ]


class FakeReservationRepository:
    def __init__(self, items: dict[str, Reservation], clock: Callable[[], datetime]) -> None:
        self._items = items
        self._clock = clock

    def get(self, reservation_id: ReservationId) -> Reservation | None:
        return self._items.get(str(reservation_id))

    def get_for_update(self, reservation_id: ReservationId) -> Reservation | None:
        return self._items.get(str(reservation_id))

    def get_by_payment_reference(self, payment_reference: PaymentReference) -> Reservation | None:
        for reservation in self._items.values():
            if reservation.payment_reference == payment_reference:
                return reservation
        return None

    def add(self, reservation: Reservation) -> None:
        self._items[str(reservation.reservation_id)] = reservation

    def update(self, reservation: Reservation) -> None:
        if str(reservation.reservation_id) not in self._items:
            raise LookupError(f"reservation {reservation.reservation_id} not found")
        self._items[str(reservation.reservation_id)] = reservation

    def list_holding_table(self, table_id: TableId, reservation_date: date) -> list[Reservation]:
        return sorted(
            (
                item
                for item in self._items.values()
                if item.table_id == table_id
                and item.reservation_date == reservation_date
                and item.status in TABLE_HOLDING_STATUSES
            ),
            key=lambda item: (item.reservation_time, str(item.reservation_id)),
        )

    def holding_statuses_for_table(self, table_id: TableId) -> list[ReservationStatus]:
        return sorted(
            {
                item.status
                for item in self._items.values()
                if item.table_id == table_id and item.status in TABLE_HOLDING_STATUSES
            },
            key=lambda status: status.value,
        )

    def list_for_restaurant(self, restaurant_id, reservation_date, status) -> list[Reservation]:
        return sorted(
            (
                item
                for item in self._items.values()
                if item.restaurant_id == restaurant_id
                and (reservation_date is None or item.reservation_date == reservation_date)
                and (status is None or item.status == status)
            ),
            key=lambda item: (item.reservation_date, item.reservation_time, str(item.reservation_id)),
        )

    def expire_stale_holds(self) -> list[ReservationId]:
        now = self._clock()
        expired: list[ReservationId] = []
        for key, item in list(self._items.items()):
            if item.status == ReservationStatus.TENTATIVE and item.expires_at and item.expires_at < now:
                self._items[key] = replace(item, status=ReservationStatus.EXPIRED, updated_at=now)
                expired.append(item.reservation_id)
        return expired

    def decay_past_slots(self, cutoff: datetime) -> list[Reservation]:
        now = self._clock()
        decayed: list[Reservation] = []
        for key, item in list(self._items.items()):
            if item.status in TABLE_HOLDING_STATUSES and item.scheduled_at < cutoff:
                updated = replace(item, status=ReservationStatus.EXPIRED, updated_at=now)
                self._items[key] = updated
                decayed.append(updated)
        return decayed


class FakeTableRepository:
    def __init__(self, items: dict[str, Table]) -> None:
        self._items = items
        self.locked: list[str] = []

    def get(self, table_id: TableId, restaurant_id: RestaurantId) -> Table | None:
        table = self._items.get(str(table_id))
        if table is None or table.restaurant_id != restaurant_id:
            return None
        return table

    def get_for_update(self, table_id: TableId, restaurant_id: RestaurantId) -> Table | None:
        self.locked.append(str(table_id))
        return self.get(table_id, restaurant_id)

    def set_status(self, table_id: TableId, status: TableStatus, now: datetime) -> None:
        table = self._items.get(str(table_id))
        if table is not None:
            self._items[str(table_id)] = table.with_status(status, now)


class FakeOrderRepository:
    def __init__(self, items: dict[str, Order]) -> None:
        self._items = items

    def add(self, order: Order) -> None:
        self._items[str(order.order_id)] = order

    def get(self, order_id: OrderId) -> Order | None:
        return self._items.get(str(order_id))

    def get_for_update(self, order_id: OrderId) -> Order | None:
        return self._items.get(str(order_id))

    def get_by_payment_reference(self, payment_reference: PaymentReference) -> Order | None:
        for order in self._items.values():
            if order.payment_reference == payment_reference:
                return order
        return None

    def find_pre_order(self, reservation_id: ReservationId) -> Order | None:
        candidates = [
            order
            for order in self._items.values()
            if order.reservation_id == reservation_id
            and order.order_type == OrderType.PRE_ORDER
            and order.status != OrderStatus.CANCELLED
        ]
        candidates.sort(key=lambda order: order.created_at, reverse=True)
        return candidates[0] if candidates else None

    def update_status(self, order_id: OrderId, status: OrderStatus, now: datetime) -> None:
        order = self._items[str(order_id)]
        self._items[str(order_id)] = replace(order, status=status)


class FakeMenuRepository:
    def __init__(self, items: dict[str, MenuItem]) -> None:
        self._items = items

    def get_items(
        self,
        restaurant_id: RestaurantId,
        item_ids: Iterable[MenuItemId],
    ) -> dict[MenuItemId, MenuItem]:
        found: dict[MenuItemId, MenuItem] = {}
        for item_id in item_ids:
            item = self._items.get(str(item_id))
            if item is not None and item.restaurant_id == restaurant_id:
                found[MenuItemId(str(item_id))] = item
        return found


class FakeOutboxRepository:
    def __init__(self, items: dict[str, OutboxMessage], clock: Callable[[], datetime]) -> None:
        self._items = items
        self._clock = clock

    def add(self, message: OutboxMessage) -> None:
        self._items[message.message_id] = message

    def claim_pending(self, limit: int, max_attempts: int) -> list[OutboxMessage]:
        pending = [
            message
            for message in self._items.values()
            if message.delivered_at is None and message.attempts < max_attempts
        ]
        return pending[:limit]

    def mark_delivered(self, message_id: str, now: datetime) -> None:
        message = self._items[message_id]
        self._items[message_id] = replace(
            message, delivered_at=now, attempts=message.attempts + 1
        )

    def mark_failed(self, message_id: str, error: str) -> None:
        message = self._items[message_id]
        self._items[message_id] = replace(
            message, attempts=message.attempts + 1, last_error=error[:2000]
        )


def _duplicate_reference(
    committed: Iterable[Any],
    working: Iterable[Any],
    id_attr: str,
) -> str | None:
    owners: dict[str, str] = {}
    for item in committed:
        if item.payment_reference:
            owners[str(item.payment_reference)] = str(getattr(item, id_attr))
    seen: dict[str, str] = {}
    for item in working:
        reference = item.payment_reference
        if not reference:
            continue
        item_id = str(getattr(item, id_attr))
        if seen.get(str(reference), item_id) != item_id:
            return str(reference)
        if owners.get(str(reference), item_id) != item_id:
            return str(reference)
        seen[str(reference)] = item_id
    return None


class FakeUnitOfWork:
    """Works on copies of the store and publishes them on ``commit``."""

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def __enter__(self) -> FakeUnitOfWork:
        self._begin()
        return self

    def __exit__(self, *args: object) -> None:
        self.rollback()

    def _begin(self) -> None:
        self._reservations = dict(self._store.reservations)
        self._tables = dict(self._store.tables)
        self._orders = dict(self._store.orders)
        self._outbox = dict(self._store.outbox)
        self.reservations = FakeReservationRepository(self._reservations, self._store.clock)
        self.tables = FakeTableRepository(self._tables)
        self.orders = FakeOrderRepository(self._orders)
        self.menu = FakeMenuRepository(self._store.menu_items)
        self.outbox = FakeOutboxRepository(self._outbox, self._store.clock)

    def commit(self) -> None:
        if self._store.before_commit is not None:
            hook = self._store.before_commit
            self._store.before_commit = None
            hook()
        duplicate = _duplicate_reference(
            self._store.reservations.values(), self._reservations.values(), "reservation_id"
        ) or _duplicate_reference(
            self._store.orders.values(), self._orders.values(), "order_id"
        )
        if duplicate is not None:
            raise DuplicatePaymentReferenceError(duplicate)
        self._store.reservations = dict(self._reservations)
        self._store.tables = dict(self._tables)
        self._store.orders = dict(self._orders)
        self._store.outbox = dict(self._outbox)
        self._store.commits += 1

    def rollback(self) -> None:
        self._begin()


def uow_factory(store: InMemoryStore) -> Callable[[], FakeUnitOfWork]:
    return lambda: FakeUnitOfWork(store)


class FakeSettingsRepository:
    def __init__(self, rows: dict[str | None, ReservationSettingsRow] | None = None) -> None:
        self.rows = rows or {}
        self.calls: list[str | None] = []
        self.error: Exception | None = None

    def get_reservation_settings(self, restaurant_id: str | None) -> ReservationSettingsRow | None:
        self.calls.append(restaurant_id)
        if self.error is not None:
            raise self.error
        return self.rows.get(restaurant_id)


class FakePaymentProvider:
    def __init__(self) -> None:
        self.records: dict[str, PaymentRecord] = {}
        self.created: list[tuple[int, str, dict[str, str]]] = []
        self.refunds: list[tuple[str, int | None, str | None]] = []
        self.webhook_events: dict[str, WebhookEvent] = {}
        self.error: PaymentProviderError | None = None

    def create_payment(self, amount_cents: int, currency: str, metadata: dict[str, str]) -> PaymentHandle:
        if self.error is not None:
            raise self.error
        reference = f"pi_{len(self.created) + 1:04d}"
        self.created.append((amount_cents, currency, dict(metadata)))
        self.records[reference] = PaymentRecord(
            payment_reference=reference,
            status="requires_payment_method",
            amount_cents=amount_cents,
            currency=currency.lower(),
            metadata=dict(metadata),
        )
        return PaymentHandle(
            payment_reference=reference,
            client_secret=f"{reference}_secret",
            amount_cents=amount_cents,
            currency=currency,
        )

    def succeed(self, reference: str, **changes: Any) -> PaymentRecord:
        record = replace(self.records[reference], status="succeeded", **changes)
        self.records[reference] = record
        return record

    def retrieve_payment(self, payment_reference: str) -> PaymentRecord:
        if self.error is not None:
            raise self.error
        record = self.records.get(payment_reference)
        if record is None:
            raise PaymentProviderError(f"no such payment: {payment_reference}")
        return record

    def refund_payment(
        self,
        payment_reference: str,
        amount_cents: int | None,
        reason: str | None,
    ) -> RefundRecord:
        if self.error is not None:
            raise self.error
        self.refunds.append((payment_reference, amount_cents, reason))
        record = self.records[payment_reference]
        return RefundRecord(
            refund_id=f"re_{len(self.refunds):04d}",
            payment_reference=payment_reference,
            amount_cents=amount_cents or record.amount_cents,
            status="succeeded",
        )

    def parse_webhook(self, raw_body: bytes, signature: str) -> WebhookEvent:
        event = self.webhook_events.get(signature)
        if event is None:
            raise WebhookSignatureError("signature mismatch")
        return event


@dataclass
class FakePublisher:
    published: list[tuple[str, str]] = field(default_factory=list)
    fail: bool = False

    def publish(self, channel: str, message: str) -> None:
        if self.fail:
            raise ConnectionError("redis down")
        self.published.append((channel, message))


@dataclass
class FakeEmailSender:
    sent: list[tuple[str, str, dict[str, Any]]] = field(default_factory=list)

    def send(self, to: str, template: str, context: dict[str, Any]) -> None:
        self.sent.append((to, template, context))


@dataclass
class FakeLock:
    available: bool = True
    acquired: int = 0
    released: int = 0

    def acquire(self) -> bool:
        if not self.available:
            return False
        self.acquired += 1
        return True

    def release(self) -> None:
        self.released += 1


def make_table(table_id: str = "tbl_001", capacity: int = 4) -> Table:
    return Table(
        table_id=TableId(table_id),
        restaurant_id=RESTAURANT_ID,
        label=f"T{table_id[-1]}",
        capacity=capacity,
        status=TableStatus.AVAILABLE,
    )


def make_menu_item(item_id: str, price_cents: int, is_available: bool = True) -> MenuItem:
    return MenuItem(
        item_id=MenuItemId(item_id),
        restaurant_id=RESTAURANT_ID,
        name=f"Item {item_id}",
        price_money=Money(amount_cents=price_cents, currency="USD"),
        is_available=is_available,
    )


def make_reservation(
    reservation_id: str = "res_001",
    *,
    status: ReservationStatus = ReservationStatus.TENTATIVE,
    table_id: str | None = "tbl_001",
    reservation_date: date = date(2026, 10, 20),
    reservation_time: time = time(19, 0),
    expires_at: datetime | None = None,
    user_id: str | None = "usr_001",
    payment_reference: str | None = None,
    customer_email: str | None = "guest@example.com",
    has_pre_order: bool = False,
    created_at: datetime = NOW,
) -> Reservation:
    if expires_at is None and status == ReservationStatus.TENTATIVE:
        expires_at = created_at + timedelta(minutes=15)
    return Reservation(
        reservation_id=ReservationId(reservation_id),
        restaurant_id=RESTAURANT_ID,
        table_id=TableId(table_id) if table_id else None,
        user_id=UserId(user_id) if user_id else None,
        customer_name="Ada Guest",
        customer_phone="+15550100",
        customer_email=customer_email,
        party_size=2,
        reservation_date=reservation_date,
        reservation_time=reservation_time,
        special_requests=None,
        status=status,
        expires_at=expires_at,
        created_at=created_at,
        updated_at=created_at,
        payment_reference=PaymentReference(payment_reference) if payment_reference else None,
        has_pre_order=has_pre_order,
    )


def seeded_store(clock: Callable[[], datetime]) -> InMemoryStore:
    store = InMemoryStore(clock)
    for table in (make_table("tbl_001", 2), make_table("tbl_002", 4), make_table("tbl_003", 6)):
        store.tables[str(table.table_id)] = table
    for item in (
        make_menu_item("itm_001", 1450),
        make_menu_item("itm_002", 1690),
        make_menu_item("itm_003", 990),
        make_menu_item("itm_004", 850, is_available=False),
    ):
        store.menu_items[str(item.item_id)] = item
    return store


def make_settings(**overrides: Any) -> AppSettings:
    values: dict[str, Any] = {
        "app_env": "test",
        "database_url": None,
        "redis_url": None,
        "stripe_secret_key": "sk_test_fake",
        "stripe_webhook_secret": "whsec_fake",
        "payment_currency": "USD",
        "intent_signing_secret": "intent-secret-for-tests-0123456789",
        "allow_unverified_payments_flag": False,
        "reservation_duration_minutes": 90,
        "cancellation_window_hours": 12,
        "settings_cache_ttl_seconds": 60.0,
        "cleanup_interval_seconds": 300.0,
        "cleanup_advisory_lock_key": 842150451,
        "outbox_interval_seconds": 1.0,
        "outbox_batch_size": 50,
        "payment_provider_timeout_seconds": 10.0,
        "payment_provider_max_attempts": 3,
        "db_checkout_warn_seconds": 5.0,
        "cors_allow_origins": (),
    }
    values.update(overrides)
    return AppSettings(**values)
