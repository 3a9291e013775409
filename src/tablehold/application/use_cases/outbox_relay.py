from __future__ import annotations

import json
import logging

from tablehold.application.metrics.lifecycle import (
    record_outbox_backlog,
    record_outbox_delivered,
    record_outbox_failed,
)
from tablehold.application.ports.outbox import EMAIL_TOPIC, OutboxMessage
from tablehold.application.ports.publisher import EmailSender, EventPublisher
from tablehold.application.ports.unit_of_work import UnitOfWorkFactory
from tablehold.application.use_cases.context import Clock, utc_now

logger = logging.getLogger(__name__)


def channel_for(restaurant_id: str, topic: str) -> str:
    return f"events:{restaurant_id}:{topic}"


class OutboxRelay:
    """Delivers committed outbox rows at least once.

    Rows are claimed with SKIP LOCKED so several relays can drain in
    parallel without delivering the same row twice in one pass.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        publisher: EventPublisher,
        email_sender: EmailSender,
        batch_size: int = 50,
        max_attempts: int = 10,
        clock: Clock = utc_now,
    ) -> None:
        self._uow_factory = uow_factory
        self._publisher = publisher
        self._email_sender = email_sender
        self._batch_size = batch_size
        self._max_attempts = max_attempts
        self._clock = clock

    def drain(self, batch_size: int | None = None) -> int:
        delivered = 0
        with self._uow_factory() as uow:
            messages = uow.outbox.claim_pending(batch_size or self._batch_size, self._max_attempts)
            record_outbox_backlog(len(messages))
            for message in messages:
                try:
                    self._dispatch(message)
                except Exception as exc:
                    uow.outbox.mark_failed(message.message_id, str(exc))
                    record_outbox_failed(message.topic)
                    logger.warning(
                        "outbox_delivery_failed",
                        extra={
                            "message_id": message.message_id,
                            "topic": message.topic,
                            "attempts": message.attempts + 1,
                            "error": str(exc),
                        },
                    )
                else:
                    uow.outbox.mark_delivered(message.message_id, self._clock())
                    record_outbox_delivered(message.topic)
                    delivered += 1
            uow.commit()
        return delivered

    def _dispatch(self, message: OutboxMessage) -> None:
        if message.topic == EMAIL_TOPIC:
            payload = json.loads(message.body)["payload"]
            self._email_sender.send(payload["to"], payload["template"], payload.get("context", {}))
            return
        self._publisher.publish(
            channel=channel_for(message.restaurant_id, message.topic),
            message=message.body,
        )
