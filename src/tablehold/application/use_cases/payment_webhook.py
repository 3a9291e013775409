from __future__ import annotations

import logging

from tablehold.application.dto.responses import WebhookAckResponse
from tablehold.application.errors import AppError, ErrorKind, InternalError, UnauthorizedError
from tablehold.application.ports.payments import PaymentProvider, WebhookSignatureError
from tablehold.application.use_cases.confirm_payment import ConfirmPayment
from tablehold.application.use_cases.context import NO_TRACE, TraceContext

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED_EVENT = "payment_intent.succeeded"
PAYMENT_FAILED_EVENT = "payment_intent.payment_failed"


class HandlePaymentWebhook:
    def __init__(self, provider: PaymentProvider | None, confirm_payment: ConfirmPayment) -> None:
        self._provider = provider
        self._confirm_payment = confirm_payment

    def execute(
        self,
        raw_body: bytes,
        signature: str | None,
        trace_ctx: TraceContext = NO_TRACE,
    ) -> WebhookAckResponse:
        if self._provider is None:
            raise InternalError(
                "payment provider is not configured",
                code="PAYMENT_PROVIDER_UNCONFIGURED",
            )
        if not signature:
            raise UnauthorizedError("missing webhook signature", code="WEBHOOK_SIGNATURE_INVALID")
        try:
            event = self._provider.parse_webhook(raw_body, signature)
        except WebhookSignatureError as exc:
            logger.warning("payment_webhook_signature_invalid", extra={"error": str(exc)})
            raise UnauthorizedError(
                "invalid webhook signature", code="WEBHOOK_SIGNATURE_INVALID"
            ) from exc

        if event.event_type == PAYMENT_FAILED_EVENT and event.payment is not None:
            logger.info(
                "payment_failed",
                extra={"payment_reference": event.payment.payment_reference},
            )
            return WebhookAckResponse(eventType=event.event_type, handled=False)
        if event.event_type != PAYMENT_SUCCEEDED_EVENT or event.payment is None:
            logger.info("payment_webhook_ignored", extra={"event_type": event.event_type})
            return WebhookAckResponse(eventType=event.event_type, handled=False)

        payment = event.payment
        metadata = payment.metadata
        reservation_id = metadata.get("reservation_id") or metadata.get("reservationId")
        reservation_intent = metadata.get("reservation_intent") or metadata.get(
            "reservationIntent"
        )
        if not reservation_id and not reservation_intent:
            logger.info(
                "payment_webhook_without_reservation",
                extra={"payment_reference": payment.payment_reference},
            )
            return WebhookAckResponse(eventType=event.event_type, handled=False)

        try:
            self._confirm_payment.execute(
                payment.payment_reference,
                reservation_id=reservation_id,
                reservation_intent=reservation_intent,
                actor=None,
                trace_ctx=trace_ctx,
                payment_record=payment,
            )
        except AppError as exc:
            if exc.kind == ErrorKind.INTERNAL:
                raise
            logger.error(
                "payment_webhook_confirm_failed",
                extra={
                    "payment_reference": payment.payment_reference,
                    "reservation_id": reservation_id,
                    "code": exc.code,
                    "error": str(exc),
                },
            )
            return WebhookAckResponse(eventType=event.event_type, handled=False)

        logger.info(
            "payment_webhook_handled",
            extra={"payment_reference": payment.payment_reference, "reservation_id": reservation_id},
        )
        return WebhookAckResponse(eventType=event.event_type, handled=True)
