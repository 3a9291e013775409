from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

EMAIL_TOPIC = "email"


@dataclass(frozen=True)
class OutboxMessage:
    message_id: str
    restaurant_id: str
    topic: str
    event_type: str
    body: str
    created_at: datetime
    attempts: int = 0
    delivered_at: datetime | None = None
    last_error: str | None = None


class OutboxRepository(Protocol):
    def add(self, message: OutboxMessage) -> None: ...

    def claim_pending(self, limit: int, max_attempts: int) -> list[OutboxMessage]: ...

    def mark_delivered(self, message_id: str, now: datetime) -> None: ...

    def mark_failed(self, message_id: str, error: str) -> None: ...
