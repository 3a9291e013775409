from __future__ import annotations

import json
import sys
from datetime import date, time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[3] / "src"))
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from fakes import FakeLock, make_reservation, uow_factory

from tablehold.application.use_cases.expiration_sweeper import ExpirationSweeper
from tablehold.domain.reservation.entities import ReservationStatus
from tablehold.domain.table.entities import TableStatus


def _sweeper(store, clock, lock=None) -> ExpirationSweeper:
    return ExpirationSweeper(uow_factory(store), lock or FakeLock(), clock=clock)


def test_sweep_expires_stale_holds_and_broadcasts(store, clock) -> None:
    store.reservations["res_stale"] = make_reservation("res_stale")
    store.reservations["res_fresh"] = make_reservation("res_fresh", table_id="tbl_002")
    clock.advance(minutes=16)
    store.reservations["res_fresh"] = make_reservation(
        "res_fresh", table_id="tbl_002", created_at=clock.now
    )
    lock = FakeLock()

    result = _sweeper(store, clock, lock).run_once()

    assert result.expired_holds == ["res_stale"]
    assert store.reservations["res_stale"].status == ReservationStatus.EXPIRED
    assert store.reservations["res_fresh"].status == ReservationStatus.TENTATIVE
    assert (lock.acquired, lock.released) == (1, 1)
    message = store.outbox_events("admin")[0]
    assert message.restaurant_id == "all"
    body = json.loads(message.body)
    assert body["event_type"] == "reservations-expired"
    assert body["payload"]["count"] == 1
    assert body["payload"]["ids"] == ["res_stale"]


def test_sweep_decays_confirmed_slots_an_hour_past_start(store, clock) -> None:
    store.reservations["res_past"] = make_reservation(
        "res_past",
        status=ReservationStatus.CONFIRMED,
        reservation_date=date(2026, 10, 19),
        reservation_time=time(10, 30),
    )
    store.reservations["res_recent"] = make_reservation(
        "res_recent",
        status=ReservationStatus.CONFIRMED,
        table_id="tbl_002",
        reservation_date=date(2026, 10, 19),
        reservation_time=time(11, 30),
    )
    store.tables["tbl_001"] = store.tables["tbl_001"].with_status(TableStatus.RESERVED, clock.now)

    result = _sweeper(store, clock).run_once()

    assert result.decayed_slots == ["res_past"]
    assert store.reservations["res_past"].status == ReservationStatus.EXPIRED
    assert store.reservations["res_recent"].status == ReservationStatus.CONFIRMED
    assert store.tables["tbl_001"].status == TableStatus.AVAILABLE


def test_sweep_expires_lapsed_hold_and_past_slot_in_one_broadcast(store, clock) -> None:
    store.reservations["res_hold"] = make_reservation("res_hold")
    clock.advance(minutes=35)
    store.reservations["res_slot"] = make_reservation(
        "res_slot",
        status=ReservationStatus.CONFIRMED,
        table_id="tbl_002",
        reservation_date=date(2026, 10, 19),
        reservation_time=time(11, 5),
    )
    sweeper = _sweeper(store, clock)
    before = sweeper.stats().totalExpired

    result = sweeper.run_once()

    assert result.expired_holds == ["res_hold"]
    assert result.decayed_slots == ["res_slot"]
    assert store.reservations["res_hold"].status == ReservationStatus.EXPIRED
    assert store.reservations["res_slot"].status == ReservationStatus.EXPIRED
    assert sweeper.stats().totalExpired == before + 2
    messages = [
        message
        for message in store.outbox_events("admin")
        if message.event_type == "reservations-expired"
    ]
    assert len(messages) == 1
    payload = json.loads(messages[0].body)["payload"]
    assert payload["count"] == 2
    assert sorted(payload["ids"]) == ["res_hold", "res_slot"]


def test_sweep_with_nothing_to_do_publishes_nothing(store, clock) -> None:
    sweeper = _sweeper(store, clock)

    result = sweeper.run_once()

    assert result.expired_ids == []
    assert store.outbox == {}
    stats = sweeper.stats()
    assert stats.totalRuns == 1
    assert stats.totalExpired == 0
    assert stats.isRunning is False


def test_sweep_skips_when_another_instance_holds_lock(store, clock) -> None:
    store.reservations["res_stale"] = make_reservation("res_stale")
    clock.advance(minutes=30)
    lock = FakeLock(available=False)
    sweeper = _sweeper(store, clock, lock)

    assert sweeper.run_once() is None

    assert store.reservations["res_stale"].status == ReservationStatus.TENTATIVE
    assert lock.released == 0
    assert sweeper.stats().skippedRuns == 1


class ExplodingUnitOfWork:
    def __enter__(self):
        raise RuntimeError("database unavailable")

    def __exit__(self, *args: object) -> None:
        return None


def test_sweep_failure_is_counted_and_lock_released(clock) -> None:
    lock = FakeLock()
    sweeper = ExpirationSweeper(ExplodingUnitOfWork, lock, clock=clock)

    assert sweeper.run_once() is None

    stats = sweeper.stats()
    assert stats.errors == 1
    assert stats.lastError == "database unavailable"
    assert lock.released == 1


def test_stats_accumulate_across_runs(store, clock) -> None:
    sweeper = _sweeper(store, clock)
    store.reservations["res_a"] = make_reservation("res_a")
    clock.advance(minutes=16)
    sweeper.run_once()
    store.reservations["res_b"] = make_reservation("res_b", created_at=clock.now)
    clock.advance(minutes=16)
    sweeper.run_once()

    stats = sweeper.stats()
    assert stats.totalRuns == 2
    assert stats.totalExpired == 2
    assert stats.lastRunAt == clock.now
    assert stats.intervalSeconds == 300.0
