from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum

from tablehold.domain.common.ids import (
    PaymentReference,
    ReservationId,
    RestaurantId,
    TableId,
    UserId,
)

HOLD_DURATION = timedelta(minutes=15)
PAYMENT_GRACE = timedelta(minutes=5)


class ReservationStatus(str, Enum):
    TENTATIVE = "tentative"
    CONFIRMED = "confirmed"
    SEATED = "seated"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"
    EXPIRED = "expired"


ALLOWED_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.TENTATIVE: frozenset(
        {ReservationStatus.CONFIRMED, ReservationStatus.EXPIRED, ReservationStatus.CANCELLED}
    ),
    ReservationStatus.CONFIRMED: frozenset(
        {ReservationStatus.SEATED, ReservationStatus.CANCELLED, ReservationStatus.EXPIRED}
    ),
    ReservationStatus.SEATED: frozenset({ReservationStatus.COMPLETED, ReservationStatus.NO_SHOW}),
    ReservationStatus.COMPLETED: frozenset(),
    ReservationStatus.CANCELLED: frozenset(),
    ReservationStatus.NO_SHOW: frozenset(),
    ReservationStatus.EXPIRED: frozenset(),
}

TERMINAL_STATUSES = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)

# Statuses that hold a table for conflict detection purposes.
TABLE_HOLDING_STATUSES = frozenset({ReservationStatus.CONFIRMED, ReservationStatus.SEATED})

TABLE_RELEASING_STATUSES = frozenset(
    {ReservationStatus.COMPLETED, ReservationStatus.CANCELLED, ReservationStatus.NO_SHOW}
)


class ReservationTransitionError(Exception):
    def __init__(self, current: ReservationStatus, target: ReservationStatus) -> None:
        super().__init__(f"cannot move reservation from status={current.value} to {target.value}")
        self.current = current
        self.target = target


@dataclass(frozen=True)
class Reservation:
    reservation_id: ReservationId
    restaurant_id: RestaurantId
    table_id: TableId | None
    user_id: UserId | None
    customer_name: str
    customer_phone: str | None
    customer_email: str | None
    party_size: int
    reservation_date: date
    reservation_time: time
    special_requests: str | None
    status: ReservationStatus
    expires_at: datetime | None
    created_at: datetime
    updated_at: datetime
    confirmed_at: datetime | None = None
    arrival_time: datetime | None = None
    payment_reference: PaymentReference | None = None
    has_pre_order: bool = False
    kitchen_notified: bool = False

    def __post_init__(self) -> None:
        if self.party_size < 1:
            raise ValueError("party_size must be >= 1")
        if not self.customer_name.strip():
            raise ValueError("customer_name must be non-empty")

    @property
    def scheduled_at(self) -> datetime:
        return datetime.combine(self.reservation_date, self.reservation_time, tzinfo=timezone.utc)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def can_transition_to(self, target: ReservationStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self.status]

    def transition_to(self, target: ReservationStatus, now: datetime) -> Reservation:
        if not self.can_transition_to(target):
            raise ReservationTransitionError(self.status, target)
        return replace(self, status=target, updated_at=now)

    def is_hold_expired(self, now: datetime) -> bool:
        return (
            self.status == ReservationStatus.TENTATIVE
            and self.expires_at is not None
            and self.expires_at < now
        )

    def expired_minutes_ago(self, now: datetime) -> int:
        if self.expires_at is None:
            return 0
        elapsed = (now - self.expires_at).total_seconds() / 60
        return max(0, math.floor(elapsed))

    def expire(self, now: datetime) -> Reservation:
        return self.transition_to(ReservationStatus.EXPIRED, now)

    def extend_hold(self, now: datetime, grace: timedelta = PAYMENT_GRACE) -> Reservation:
        if self.status != ReservationStatus.TENTATIVE:
            return self
        return replace(self, expires_at=now + grace, updated_at=now)

    def confirm(self, payment_reference: PaymentReference | None, now: datetime) -> Reservation:
        confirmed = self.transition_to(ReservationStatus.CONFIRMED, now)
        return replace(
            confirmed,
            expires_at=None,
            confirmed_at=now,
            payment_reference=payment_reference or self.payment_reference,
        )

    def seat(self, now: datetime) -> Reservation:
        seated = self.transition_to(ReservationStatus.SEATED, now)
        return replace(seated, arrival_time=now)

    def hours_until_slot(self, now: datetime) -> float:
        return (self.scheduled_at - now).total_seconds() / 3600


def create_tentative_reservation(
    reservation_id: ReservationId,
    restaurant_id: RestaurantId,
    table_id: TableId | None,
    user_id: UserId | None,
    customer_name: str,
    customer_phone: str | None,
    customer_email: str | None,
    party_size: int,
    reservation_date: date,
    reservation_time: time,
    special_requests: str | None,
    now: datetime,
    hold: timedelta = HOLD_DURATION,
) -> Reservation:
    return Reservation(
        reservation_id=reservation_id,
        restaurant_id=restaurant_id,
        table_id=table_id,
        user_id=user_id,
        customer_name=customer_name,
        customer_phone=customer_phone,
        customer_email=customer_email,
        party_size=party_size,
        reservation_date=reservation_date,
        reservation_time=reservation_time,
        special_requests=special_requests,
        status=ReservationStatus.TENTATIVE,
        expires_at=now + hold,
        created_at=now,
        updated_at=now,
    )
