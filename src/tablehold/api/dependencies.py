"""Wiring of use cases to their infrastructure adapters.

The container is built once per application and stored on ``app.state``.
Tests build one from in-memory fakes and pass it to ``create_app``.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from tablehold.application.ports.locks import AdvisoryLock
from tablehold.application.ports.payments import PaymentProvider
from tablehold.application.ports.publisher import EmailSender, EventPublisher
from tablehold.application.ports.repositories import SettingsRepository
from tablehold.application.ports.unit_of_work import UnitOfWorkFactory
from tablehold.application.services.conflict_detector import ConflictDetector
from tablehold.application.services.payment_gateway import PaymentVerificationGateway
from tablehold.application.services.settings_cache import ReservationSettings, SettingsCache
from tablehold.application.use_cases.commit_order import OrderCommitBuilder
from tablehold.application.use_cases.confirm_payment import ConfirmPayment
from tablehold.application.use_cases.context import Clock, utc_now
from tablehold.application.use_cases.expiration_sweeper import ExpirationSweeper
from tablehold.application.use_cases.get_order import GetOrder
from tablehold.application.use_cases.outbox_relay import OutboxRelay
from tablehold.application.use_cases.payment_webhook import HandlePaymentWebhook
from tablehold.application.use_cases.refund_payment import RefundPayment
from tablehold.application.use_cases.reservation_intent import IntentSigner, ReservationIntents
from tablehold.application.use_cases.reservation_lifecycle import ReservationLifecycle
from tablehold.application.use_cases.update_order_status import UpdateOrderStatus
from tablehold.infrastructure.config import AppSettings
from tablehold.infrastructure.db.repositories.settings_repo import SqlAlchemySettingsRepository
from tablehold.infrastructure.db.session import get_engine
from tablehold.infrastructure.db.unit_of_work import sqlalchemy_uow_factory
from tablehold.infrastructure.email.logging_sender import LoggingEmailSender
from tablehold.infrastructure.locks.advisory_lock import PostgresAdvisoryLock
from tablehold.infrastructure.messaging.redis_publisher import RedisEventPublisher
from tablehold.infrastructure.payments.stripe_provider import StripePaymentProvider


@dataclass
class Container:
    settings: AppSettings
    settings_cache: SettingsCache
    lifecycle: ReservationLifecycle
    intents: ReservationIntents
    gateway: PaymentVerificationGateway
    orders: OrderCommitBuilder
    confirm_payment: ConfirmPayment
    payment_webhook: HandlePaymentWebhook
    update_order_status: UpdateOrderStatus
    get_order: GetOrder
    refund_payment: RefundPayment
    sweeper: ExpirationSweeper
    outbox_relay: OutboxRelay


def build_container(
    settings: AppSettings,
    *,
    uow_factory: UnitOfWorkFactory,
    settings_repository: SettingsRepository,
    provider: PaymentProvider | None,
    lock: AdvisoryLock,
    publisher: EventPublisher,
    email_sender: EmailSender,
    clock: Clock = utc_now,
) -> Container:
    settings_cache = SettingsCache(
        settings_repository,
        defaults=ReservationSettings(
            hold_buffer_minutes=settings.reservation_duration_minutes,
            cancellation_window_hours=settings.cancellation_window_hours,
        ),
        ttl_seconds=settings.settings_cache_ttl_seconds,
    )
    conflicts = ConflictDetector(settings_cache)
    lifecycle = ReservationLifecycle(uow_factory, conflicts, settings_cache, clock=clock)
    intents = ReservationIntents(
        uow_factory,
        conflicts,
        IntentSigner(settings.intent_signing_secret),
        clock=clock,
    )
    gateway = PaymentVerificationGateway(
        uow_factory,
        provider,
        settings.payment_currency,
        allow_unverified=settings.allow_unverified_payments,
        lifecycle=lifecycle,
        intents=intents,
    )
    orders = OrderCommitBuilder(uow_factory, conflicts, settings.payment_currency, clock=clock)
    confirm_payment = ConfirmPayment(gateway, lifecycle, intents, orders, clock=clock)
    return Container(
        settings=settings,
        settings_cache=settings_cache,
        lifecycle=lifecycle,
        intents=intents,
        gateway=gateway,
        orders=orders,
        confirm_payment=confirm_payment,
        payment_webhook=HandlePaymentWebhook(provider, confirm_payment),
        update_order_status=UpdateOrderStatus(uow_factory, clock=clock),
        get_order=GetOrder(uow_factory),
        refund_payment=RefundPayment(gateway, uow_factory, clock=clock),
        sweeper=ExpirationSweeper(
            uow_factory,
            lock,
            interval_seconds=settings.cleanup_interval_seconds,
            clock=clock,
        ),
        outbox_relay=OutboxRelay(
            uow_factory,
            publisher,
            email_sender,
            batch_size=settings.outbox_batch_size,
            clock=clock,
        ),
    )


def build_default_container(settings: AppSettings) -> Container:
    engine = get_engine(warn_after_seconds=settings.db_checkout_warn_seconds)
    provider = None
    if settings.stripe_secret_key:
        provider = StripePaymentProvider(
            settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            timeout_seconds=settings.payment_provider_timeout_seconds,
            max_attempts=settings.payment_provider_max_attempts,
        )
    return build_container(
        settings,
        uow_factory=sqlalchemy_uow_factory(engine),
        settings_repository=SqlAlchemySettingsRepository(engine),
        provider=provider,
        lock=PostgresAdvisoryLock(engine, settings.cleanup_advisory_lock_key),
        publisher=RedisEventPublisher(settings.redis_url),
        email_sender=LoggingEmailSender(),
    )


def get_container(request: Request) -> Container:
    container: Container | None = getattr(request.app.state, "container", None)
    if container is None:
        container = build_default_container(request.app.state.settings)
        request.app.state.container = container
    return container
