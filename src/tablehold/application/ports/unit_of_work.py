from __future__ import annotations

from typing import Callable, Protocol

from tablehold.application.ports.outbox import OutboxRepository
from tablehold.application.ports.repositories import (
    MenuRepository,
    OrderRepository,
    ReservationRepository,
    TableRepository,
)


class UnitOfWork(Protocol):
    """One database transaction.

    Leaving the ``with`` block without ``commit()`` rolls everything back,
    including row locks taken through ``get_for_update``.
    """

    reservations: ReservationRepository
    tables: TableRepository
    orders: OrderRepository
    menu: MenuRepository
    outbox: OutboxRepository

    def __enter__(self) -> UnitOfWork: ...

    def __exit__(self, *args: object) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


UnitOfWorkFactory = Callable[[], UnitOfWork]
