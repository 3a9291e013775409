from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, TypeVar
from uuid import uuid4

import stripe

from tablehold.application.metrics.lifecycle import record_provider_retry
from tablehold.application.ports.payments import (
    PaymentHandle,
    PaymentProvider,
    PaymentProviderError,
    PaymentRecord,
    RefundRecord,
    WebhookEvent,
    WebhookSignatureError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_STRIPE_ERRORS: tuple[type[Exception], ...] = (
    stripe.APIConnectionError,
    stripe.RateLimitError,
    stripe.APIError,
)


def _to_record(intent: Any) -> PaymentRecord:
    metadata = intent["metadata"]
    return PaymentRecord(
        payment_reference=str(intent["id"]),
        status=str(intent["status"]),
        amount_cents=int(intent["amount"]),
        currency=str(intent["currency"]).upper(),
        metadata={str(key): str(value) for key, value in metadata.to_dict().items()}
        if metadata
        else {},
    )


def _idempotency_key(operation: str) -> str:
    # One key per logical write, reused by every retry of it.
    return f"tablehold-{operation}-{uuid4().hex}"


class StripePaymentProvider(PaymentProvider):
    """Stripe PaymentIntents with a per-attempt timeout and bounded retries.

    Transient failures (network, rate limit, Stripe 5xx, timeout) are retried
    with exponential backoff; once attempts run out they surface as
    ``PaymentProviderError(transient=True)``.
    """

    def __init__(
        self,
        secret_key: str,
        webhook_secret: str | None = None,
        timeout_seconds: float = 10.0,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret
        self._timeout_seconds = timeout_seconds
        self._max_attempts = max(1, max_attempts)
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep

    def create_payment(
        self,
        amount_cents: int,
        currency: str,
        metadata: dict[str, str],
    ) -> PaymentHandle:
        idempotency_key = _idempotency_key("create_payment")
        intent = self._with_retries(
            "create_payment",
            lambda: stripe.PaymentIntent.create(
                amount=amount_cents,
                currency=currency.lower(),
                metadata=metadata,
                automatic_payment_methods={"enabled": True},
                api_key=self._secret_key,
                idempotency_key=idempotency_key,
            ),
        )
        return PaymentHandle(
            payment_reference=str(intent["id"]),
            client_secret=intent["client_secret"],
            amount_cents=int(intent["amount"]),
            currency=str(intent["currency"]).upper(),
        )

    def retrieve_payment(self, payment_reference: str) -> PaymentRecord:
        intent = self._with_retries(
            "retrieve_payment",
            lambda: stripe.PaymentIntent.retrieve(payment_reference, api_key=self._secret_key),
        )
        return _to_record(intent)

    def refund_payment(
        self,
        payment_reference: str,
        amount_cents: int | None,
        reason: str | None,
    ) -> RefundRecord:
        params: dict[str, Any] = {"payment_intent": payment_reference}
        if amount_cents is not None:
            params["amount"] = amount_cents
        if reason:
            params["reason"] = reason
        idempotency_key = _idempotency_key("refund_payment")
        refund = self._with_retries(
            "refund_payment",
            lambda: stripe.Refund.create(
                api_key=self._secret_key, idempotency_key=idempotency_key, **params
            ),
        )
        return RefundRecord(
            refund_id=str(refund["id"]),
            payment_reference=payment_reference,
            amount_cents=int(refund["amount"]),
            status=str(refund["status"]),
        )

    def parse_webhook(self, raw_body: bytes, signature: str) -> WebhookEvent:
        if not self._webhook_secret:
            raise WebhookSignatureError("webhook secret is not configured")
        try:
            event = stripe.Webhook.construct_event(raw_body, signature, self._webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as exc:
            raise WebhookSignatureError(str(exc)) from exc

        event_type = str(event["type"])
        payment = None
        if event_type.startswith("payment_intent."):
            payment = _to_record(event["data"]["object"])
        return WebhookEvent(event_id=str(event["id"]), event_type=event_type, payment=payment)

    def _with_retries(self, operation: str, call: Callable[[], T]) -> T:
        delay = self._backoff_seconds
        attempt = 0
        while True:
            attempt += 1
            try:
                return self._with_timeout(call)
            except (FutureTimeoutError, *TRANSIENT_STRIPE_ERRORS) as exc:
                if attempt >= self._max_attempts:
                    logger.error(
                        "payment_provider_unavailable",
                        extra={"operation": operation, "attempts": attempt},
                    )
                    raise PaymentProviderError(
                        f"{operation} failed after {attempt} attempts",
                        transient=True,
                    ) from exc
                record_provider_retry(operation)
                logger.warning(
                    "payment_provider_retry",
                    extra={
                        "operation": operation,
                        "attempt": attempt,
                        "backoff_seconds": delay,
                        "error": type(exc).__name__,
                    },
                )
                self._sleep(delay)
                delay = min(delay * 2, 5.0)
            except stripe.StripeError as exc:
                raise PaymentProviderError(str(exc), transient=False) from exc

    def _with_timeout(self, call: Callable[[], T]) -> T:
        executor = ThreadPoolExecutor(max_workers=1)
        try:
            return executor.submit(call).result(timeout=self._timeout_seconds)
        finally:
            executor.shutdown(wait=False)
