from __future__ import annotations

from typing import Callable

from sqlalchemy import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tablehold.application.ports.repositories import DuplicatePaymentReferenceError
from tablehold.infrastructure.db.repositories.integrity import is_payment_reference_violation
from tablehold.infrastructure.db.repositories.menu_repo import SqlAlchemyMenuRepository
from tablehold.infrastructure.db.repositories.order_repo import SqlAlchemyOrderRepository
from tablehold.infrastructure.db.repositories.outbox_repo import SqlAlchemyOutboxRepository
from tablehold.infrastructure.db.repositories.reservation_repo import (
    SqlAlchemyReservationRepository,
)
from tablehold.infrastructure.db.repositories.table_repo import SqlAlchemyTableRepository
from tablehold.infrastructure.db.session import get_engine


class SqlAlchemyUnitOfWork:
    """One Session per ``with`` block; exiting without ``commit()`` rolls back."""

    def __init__(self, engine: Engine | None = None) -> None:
        self._engine = engine or get_engine()
        self._session: Session | None = None

    def __enter__(self) -> SqlAlchemyUnitOfWork:
        session = Session(self._engine, expire_on_commit=False)
        self._session = session
        self.reservations = SqlAlchemyReservationRepository(session)
        self.tables = SqlAlchemyTableRepository(session)
        self.orders = SqlAlchemyOrderRepository(session)
        self.menu = SqlAlchemyMenuRepository(session)
        self.outbox = SqlAlchemyOutboxRepository(session)
        return self

    def __exit__(self, *args: object) -> None:
        session = self._session
        if session is None:
            return
        try:
            session.rollback()
        finally:
            session.close()
            self._session = None

    def commit(self) -> None:
        try:
            self._require_session().commit()
        except IntegrityError as exc:
            if is_payment_reference_violation(exc):
                raise DuplicatePaymentReferenceError("unknown") from exc
            raise

    def rollback(self) -> None:
        self._require_session().rollback()

    def _require_session(self) -> Session:
        if self._session is None:
            raise RuntimeError("unit of work used outside of a with block")
        return self._session


def sqlalchemy_uow_factory(engine: Engine) -> Callable[[], SqlAlchemyUnitOfWork]:
    def factory() -> SqlAlchemyUnitOfWork:
        return SqlAlchemyUnitOfWork(engine)

    return factory
