from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

from tablehold.domain.order.entities import OrderStatus
from tablehold.domain.reservation.entities import ReservationStatus

RESERVATION_TRANSITION_TOTAL = Counter(
    "tablehold_reservation_transition_total",
    "Total number of reservation lifecycle transitions.",
    ["from", "to"],
)

RESERVATION_CONFLICTS_TOTAL = Counter(
    "tablehold_reservation_conflicts_total",
    "Total number of reservation requests rejected for a slot conflict.",
    ["restaurant_id", "stage"],
)

ORDERS_COMMITTED_TOTAL = Counter(
    "tablehold_orders_committed_total",
    "Total number of orders committed by order type.",
    ["restaurant_id", "order_type"],
)

ORDER_TRANSITION_TOTAL = Counter(
    "tablehold_order_transition_total",
    "Total number of order lifecycle transitions.",
    ["from", "to"],
)

PAYMENT_MISMATCH_TOTAL = Counter(
    "tablehold_payment_mismatch_total",
    "Total number of payments rejected for an amount or content mismatch.",
    ["reason"],
)

PAYMENT_VERIFICATION_SKIPPED_TOTAL = Counter(
    "tablehold_payment_verification_skipped_total",
    "Total number of payments accepted without provider verification.",
)

PAYMENT_PROVIDER_RETRIES_TOTAL = Counter(
    "tablehold_payment_provider_retries_total",
    "Total number of retried payment provider calls.",
    ["operation"],
)

SWEEPER_RUNS_TOTAL = Counter(
    "tablehold_sweeper_runs_total",
    "Total number of expiration sweeper cycles by outcome.",
    ["outcome"],
)

SWEEPER_EXPIRED_TOTAL = Counter(
    "tablehold_sweeper_expired_total",
    "Total number of reservations expired by the sweeper.",
    ["pass_name"],
)

SWEEPER_DURATION_SECONDS = Histogram(
    "tablehold_sweeper_duration_seconds",
    "Duration of expiration sweeper cycles.",
)

OUTBOX_DELIVERED_TOTAL = Counter(
    "tablehold_outbox_delivered_total",
    "Total number of outbox messages delivered by topic kind.",
    ["kind"],
)

OUTBOX_FAILED_TOTAL = Counter(
    "tablehold_outbox_failed_total",
    "Total number of failed outbox delivery attempts by topic kind.",
    ["kind"],
)

OUTBOX_BACKLOG = Gauge(
    "tablehold_outbox_backlog",
    "Number of outbox messages claimed by the last relay batch.",
)


def record_reservation_transition(
    from_status: ReservationStatus | None, to_status: ReservationStatus
) -> None:
    source = from_status.value if from_status is not None else "new"
    RESERVATION_TRANSITION_TOTAL.labels(**{"from": source, "to": to_status.value}).inc()


def record_conflict(restaurant_id: str, stage: str) -> None:
    RESERVATION_CONFLICTS_TOTAL.labels(restaurant_id=restaurant_id, stage=stage).inc()


def record_order_committed(restaurant_id: str, order_type: str) -> None:
    ORDERS_COMMITTED_TOTAL.labels(restaurant_id=restaurant_id, order_type=order_type).inc()


def record_order_transition(from_status: OrderStatus, to_status: OrderStatus) -> None:
    ORDER_TRANSITION_TOTAL.labels(**{"from": from_status.value, "to": to_status.value}).inc()


def record_payment_mismatch(reason: str) -> None:
    PAYMENT_MISMATCH_TOTAL.labels(reason=reason).inc()


def record_verification_skipped() -> None:
    PAYMENT_VERIFICATION_SKIPPED_TOTAL.inc()


def record_provider_retry(operation: str) -> None:
    PAYMENT_PROVIDER_RETRIES_TOTAL.labels(operation=operation).inc()


def record_sweeper_run(outcome: str, duration_seconds: float | None = None) -> None:
    SWEEPER_RUNS_TOTAL.labels(outcome=outcome).inc()
    if duration_seconds is not None:
        SWEEPER_DURATION_SECONDS.observe(max(duration_seconds, 0.0))


def record_sweeper_expired(pass_name: str, count: int) -> None:
    if count:
        SWEEPER_EXPIRED_TOTAL.labels(pass_name=pass_name).inc(count)


def _topic_kind(topic: str) -> str:
    return "table" if topic.startswith("table-") else topic


def record_outbox_delivered(topic: str) -> None:
    OUTBOX_DELIVERED_TOTAL.labels(kind=_topic_kind(topic)).inc()


def record_outbox_failed(topic: str) -> None:
    OUTBOX_FAILED_TOTAL.labels(kind=_topic_kind(topic)).inc()


def record_outbox_backlog(size: int) -> None:
    OUTBOX_BACKLOG.set(size)
