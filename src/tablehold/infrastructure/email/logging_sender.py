from __future__ import annotations

import logging
from typing import Any

from tablehold.application.ports.publisher import EmailSender

logger = logging.getLogger(__name__)


class LoggingEmailSender(EmailSender):
    """Records outgoing mail in the log instead of sending it."""

    def send(self, to: str, template: str, context: dict[str, Any]) -> None:
        logger.info(
            "email_sent",
            extra={"to": to, "template": template, "context_keys": sorted(context)},
        )
