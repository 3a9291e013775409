from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from tablehold.application.ports.repositories import DuplicatePaymentReferenceError


def is_payment_reference_violation(exc: IntegrityError) -> bool:
    return "payment_reference" in str(exc.orig)


def translate_integrity_error(exc: IntegrityError, payment_reference: str | None) -> Exception:
    if is_payment_reference_violation(exc):
        return DuplicatePaymentReferenceError(payment_reference or "unknown")
    return exc
