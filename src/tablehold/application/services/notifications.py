from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import uuid4

from tablehold.application.mappers.event_envelope import serialize_event
from tablehold.application.ports.outbox import EMAIL_TOPIC, OutboxMessage, OutboxRepository
from tablehold.application.use_cases.context import TraceContext

KITCHEN_TOPIC = "kitchen"
ADMIN_TOPIC = "admin"
BROADCAST_RESTAURANT_ID = "all"


def table_topic(table_id: str) -> str:
    return f"table-{table_id}"


def enqueue_event(
    outbox: OutboxRepository,
    *,
    restaurant_id: str,
    topic: str,
    event_type: str,
    payload: dict[str, Any],
    occurred_at: datetime,
    trace_ctx: TraceContext | None = None,
) -> None:
    body = serialize_event(
        event_type=event_type,
        occurred_at=occurred_at,
        restaurant_id=restaurant_id,
        payload=payload,
        trace_id=trace_ctx.trace_id if trace_ctx else None,
        request_id=trace_ctx.request_id if trace_ctx else None,
    )
    outbox.add(
        OutboxMessage(
            message_id=f"obx_{uuid4().hex}",
            restaurant_id=restaurant_id,
            topic=topic,
            event_type=event_type,
            body=body,
            created_at=occurred_at,
        )
    )


def enqueue_email(
    outbox: OutboxRepository,
    *,
    restaurant_id: str,
    to: str | None,
    template: str,
    context: dict[str, Any],
    occurred_at: datetime,
    trace_ctx: TraceContext | None = None,
) -> None:
    if not to:
        return
    enqueue_event(
        outbox,
        restaurant_id=restaurant_id,
        topic=EMAIL_TOPIC,
        event_type=template,
        payload={"to": to, "template": template, "context": context},
        occurred_at=occurred_at,
        trace_ctx=trace_ctx,
    )
