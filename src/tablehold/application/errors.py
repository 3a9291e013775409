"""Typed application errors.

Every error carries an ``ErrorKind`` and a machine-readable ``code``. The HTTP
layer maps the kind to a status; it never inspects the message text.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    EXPIRED = "expired"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    PAYMENT_MISMATCH = "payment_mismatch"
    INTERNAL = "internal"


class AppError(Exception):
    kind: ErrorKind = ErrorKind.INTERNAL
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code
        self.details: dict[str, Any] = details or {}


class ValidationFailedError(AppError):
    kind = ErrorKind.VALIDATION
    code = "VALIDATION_FAILED"


class NotFoundError(AppError):
    kind = ErrorKind.NOT_FOUND
    code = "NOT_FOUND"


class ConflictError(AppError):
    kind = ErrorKind.CONFLICT
    code = "CONFLICT"


class ExpiredError(AppError):
    kind = ErrorKind.EXPIRED
    code = "EXPIRED"


class UnauthorizedError(AppError):
    kind = ErrorKind.UNAUTHORIZED
    code = "UNAUTHORIZED"


class ForbiddenError(AppError):
    kind = ErrorKind.FORBIDDEN
    code = "FORBIDDEN"


class PaymentMismatchError(AppError):
    kind = ErrorKind.PAYMENT_MISMATCH
    code = "PAYMENT_MISMATCH"


class InternalError(AppError):
    kind = ErrorKind.INTERNAL
    code = "INTERNAL_ERROR"


class ReservationNotFoundError(NotFoundError):
    code = "RESERVATION_NOT_FOUND"


class TableNotFoundError(NotFoundError):
    code = "TABLE_NOT_FOUND"


class OrderNotFoundError(NotFoundError):
    code = "ORDER_NOT_FOUND"


class ReservationConflictError(ConflictError):
    code = "RESERVATION_CONFLICT"


class ReservationExpiredError(ExpiredError):
    code = "RESERVATION_EXPIRED"


class InvalidTransitionError(ValidationFailedError):
    code = "INVALID_STATUS_TRANSITION"


class MenuItemUnavailableError(ValidationFailedError):
    code = "MENU_ITEM_UNAVAILABLE"


class PaymentNotSucceededError(ValidationFailedError):
    code = "PAYMENT_NOT_SUCCEEDED"


class PaymentProviderUnavailableError(InternalError):
    code = "PAYMENT_PROVIDER_UNAVAILABLE"
