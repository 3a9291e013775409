from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from tablehold.application.ports.outbox import OutboxMessage, OutboxRepository
from tablehold.infrastructure.db.models.outbox import OutboxMessageModel


class SqlAlchemyOutboxRepository(OutboxRepository):
    def __init__(self, session: Session) -> None:
        self._session = session

    def add(self, message: OutboxMessage) -> None:
        self._session.add(
            OutboxMessageModel(
                id=message.message_id,
                restaurant_id=message.restaurant_id,
                topic=message.topic,
                event_type=message.event_type,
                payload=message.body,
                attempts=message.attempts,
                created_at=message.created_at,
            )
        )

    def claim_pending(self, limit: int, max_attempts: int) -> list[OutboxMessage]:
        statement = (
            select(OutboxMessageModel)
            .where(
                OutboxMessageModel.delivered_at.is_(None),
                OutboxMessageModel.attempts < max_attempts,
            )
            .order_by(OutboxMessageModel.created_at, OutboxMessageModel.id)
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        return [self._to_message(model) for model in self._session.scalars(statement)]

    def mark_delivered(self, message_id: str, now: datetime) -> None:
        self._session.execute(
            update(OutboxMessageModel)
            .where(OutboxMessageModel.id == message_id)
            .values(delivered_at=now, attempts=OutboxMessageModel.attempts + 1, last_error=None)
        )

    def mark_failed(self, message_id: str, error: str) -> None:
        self._session.execute(
            update(OutboxMessageModel)
            .where(OutboxMessageModel.id == message_id)
            .values(attempts=OutboxMessageModel.attempts + 1, last_error=error[:2000])
        )

    @staticmethod
    def _to_message(model: OutboxMessageModel) -> OutboxMessage:
        created_at = model.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return OutboxMessage(
            message_id=model.id,
            restaurant_id=model.restaurant_id,
            topic=model.topic,
            event_type=model.event_type,
            body=model.payload,
            created_at=created_at,
            attempts=model.attempts,
            delivered_at=model.delivered_at,
            last_error=model.last_error,
        )
