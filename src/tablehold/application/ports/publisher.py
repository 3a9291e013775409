from __future__ import annotations

from typing import Any, Protocol


class EventPublisher(Protocol):
    def publish(self, channel: str, message: str) -> None: ...


class EmailSender(Protocol):
    def send(self, to: str, template: str, context: dict[str, Any]) -> None: ...
