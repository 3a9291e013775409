from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

SUCCEEDED = "succeeded"


@dataclass(frozen=True)
class PaymentHandle:
    payment_reference: str
    client_secret: str | None
    amount_cents: int
    currency: str


@dataclass(frozen=True)
class PaymentRecord:
    payment_reference: str
    status: str
    amount_cents: int
    currency: str
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCEEDED


@dataclass(frozen=True)
class RefundRecord:
    refund_id: str
    payment_reference: str
    amount_cents: int
    status: str


@dataclass(frozen=True)
class WebhookEvent:
    event_id: str
    event_type: str
    payment: PaymentRecord | None


class PaymentProvider(Protocol):
    def create_payment(
        self,
        amount_cents: int,
        currency: str,
        metadata: dict[str, str],
    ) -> PaymentHandle: ...

    def retrieve_payment(self, payment_reference: str) -> PaymentRecord: ...

    def refund_payment(
        self,
        payment_reference: str,
        amount_cents: int | None,
        reason: str | None,
    ) -> RefundRecord: ...

    def parse_webhook(self, raw_body: bytes, signature: str) -> WebhookEvent: ...


class PaymentProviderError(Exception):
    def __init__(self, message: str, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient


class WebhookSignatureError(Exception):
    pass
