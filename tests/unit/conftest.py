from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))
sys.path.insert(0, str(Path(__file__).resolve().parent))

from fakes import (
    Clock,
    FakeEmailSender,
    FakeLock,
    FakePaymentProvider,
    FakePublisher,
    FakeSettingsRepository,
    InMemoryStore,
    make_settings,
    seeded_store,
    uow_factory,
)

from tablehold.api.dependencies import Container, build_container


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def store(clock: Clock) -> InMemoryStore:
    return seeded_store(clock)


@pytest.fixture
def provider() -> FakePaymentProvider:
    return FakePaymentProvider()


@pytest.fixture
def publisher() -> FakePublisher:
    return FakePublisher()


@pytest.fixture
def email_sender() -> FakeEmailSender:
    return FakeEmailSender()


@pytest.fixture
def lock() -> FakeLock:
    return FakeLock()


@pytest.fixture
def settings_repository() -> FakeSettingsRepository:
    return FakeSettingsRepository()


@pytest.fixture
def container(
    store: InMemoryStore,
    clock: Clock,
    provider: FakePaymentProvider,
    publisher: FakePublisher,
    email_sender: FakeEmailSender,
    lock: FakeLock,
    settings_repository: FakeSettingsRepository,
) -> Container:
    return build_container(
        make_settings(),
        uow_factory=uow_factory(store),
        settings_repository=settings_repository,
        provider=provider,
        lock=lock,
        publisher=publisher,
        email_sender=email_sender,
        clock=clock,
    )
