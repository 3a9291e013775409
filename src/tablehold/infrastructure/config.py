from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

UNVERIFIED_PAYMENT_ENVIRONMENTS = frozenset({"dev", "development", "test"})


def _env_str(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_int(name: str, default: int) -> int:
    value = _env_str(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {value!r}") from exc


def _env_float(name: str, default: float) -> float:
    value = _env_str(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number, got {value!r}") from exc


def _env_bool(name: str, default: bool = False) -> bool:
    value = _env_str(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class AppSettings:
    app_env: str
    database_url: str | None
    redis_url: str | None
    stripe_secret_key: str | None
    stripe_webhook_secret: str | None
    payment_currency: str
    intent_signing_secret: str | None
    allow_unverified_payments_flag: bool
    reservation_duration_minutes: int
    cancellation_window_hours: int
    settings_cache_ttl_seconds: float
    cleanup_interval_seconds: float
    cleanup_advisory_lock_key: int
    outbox_interval_seconds: float
    outbox_batch_size: int
    payment_provider_timeout_seconds: float
    payment_provider_max_attempts: int
    db_checkout_warn_seconds: float
    cors_allow_origins: tuple[str, ...]

    @property
    def allow_unverified_payments(self) -> bool:
        """The skip flag only takes effect outside production-like environments."""
        return (
            self.allow_unverified_payments_flag
            and self.app_env in UNVERIFIED_PAYMENT_ENVIRONMENTS
        )


@lru_cache(maxsize=1)
def load_settings() -> AppSettings:
    origins = _env_str("CORS_ALLOW_ORIGINS", "") or ""
    return AppSettings(
        app_env=(_env_str("APP_ENV", "dev") or "dev").lower(),
        database_url=_env_str("DATABASE_URL"),
        redis_url=_env_str("REDIS_URL"),
        stripe_secret_key=_env_str("STRIPE_SECRET_KEY"),
        stripe_webhook_secret=_env_str("STRIPE_WEBHOOK_SECRET"),
        payment_currency=(_env_str("PAYMENT_CURRENCY", "USD") or "USD").upper(),
        intent_signing_secret=_env_str("INTENT_SIGNING_SECRET"),
        allow_unverified_payments_flag=_env_bool("ALLOW_UNVERIFIED_PAYMENTS"),
        reservation_duration_minutes=_env_int("RESERVATION_DURATION_MINUTES", 90),
        cancellation_window_hours=_env_int("CANCELLATION_WINDOW_HOURS", 12),
        settings_cache_ttl_seconds=_env_float("SETTINGS_CACHE_TTL_SECONDS", 60.0),
        cleanup_interval_seconds=_env_float("CLEANUP_INTERVAL_SECONDS", 300.0),
        cleanup_advisory_lock_key=_env_int("CLEANUP_ADVISORY_LOCK_KEY", 842150451),
        outbox_interval_seconds=_env_float("OUTBOX_INTERVAL_SECONDS", 1.0),
        outbox_batch_size=_env_int("OUTBOX_BATCH_SIZE", 50),
        payment_provider_timeout_seconds=_env_float("PAYMENT_PROVIDER_TIMEOUT_SECONDS", 10.0),
        payment_provider_max_attempts=_env_int("PAYMENT_PROVIDER_MAX_ATTEMPTS", 3),
        db_checkout_warn_seconds=_env_float("DB_CHECKOUT_WARN_SECONDS", 5.0),
        cors_allow_origins=tuple(
            origin.strip() for origin in origins.split(",") if origin.strip()
        ),
    )
