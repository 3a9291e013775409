from __future__ import annotations

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[3] / "src"))
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from fakes import FakeSettingsRepository

from tablehold.application.ports.repositories import ReservationSettingsRow
from tablehold.application.services.settings_cache import ReservationSettings, SettingsCache

DEFAULTS = ReservationSettings(hold_buffer_minutes=90, cancellation_window_hours=12)


class FakeMonotonic:
    def __init__(self) -> None:
        self.value = 100.0

    def __call__(self) -> float:
        return self.value


def test_restaurant_row_overrides_global_row_field_by_field() -> None:
    repository = FakeSettingsRepository(
        {
            "rst_001": ReservationSettingsRow(
                reservation_duration_minutes=120, cancellation_window_hours=None
            ),
            None: ReservationSettingsRow(
                reservation_duration_minutes=60, cancellation_window_hours=24
            ),
        }
    )
    cache = SettingsCache(repository, DEFAULTS)

    settings = cache.get("rst_001")

    assert settings == ReservationSettings(hold_buffer_minutes=120, cancellation_window_hours=24)


def test_missing_rows_fall_back_to_defaults() -> None:
    cache = SettingsCache(FakeSettingsRepository(), DEFAULTS)
    assert cache.get("rst_001") == DEFAULTS
    assert cache.get(None) == DEFAULTS


def test_zero_cancellation_window_is_respected() -> None:
    repository = FakeSettingsRepository(
        {"rst_001": ReservationSettingsRow(None, cancellation_window_hours=0)}
    )
    cache = SettingsCache(repository, DEFAULTS)
    assert cache.cancellation_window_hours("rst_001") == 0


def test_entries_are_cached_until_ttl_elapses() -> None:
    repository = FakeSettingsRepository()
    monotonic = FakeMonotonic()
    cache = SettingsCache(repository, DEFAULTS, ttl_seconds=60.0, clock=monotonic)

    cache.get("rst_001")
    cache.get("rst_001")
    assert repository.calls == ["rst_001", None]

    monotonic.value += 61
    repository.rows["rst_001"] = ReservationSettingsRow(45, 6)
    assert cache.get("rst_001") == ReservationSettings(45, 6)
    assert repository.calls == ["rst_001", None, "rst_001", None]


def test_invalidate_forces_reload() -> None:
    repository = FakeSettingsRepository()
    cache = SettingsCache(repository, DEFAULTS)
    cache.get("rst_001")

    repository.rows["rst_001"] = ReservationSettingsRow(30, 2)
    cache.invalidate("rst_001")

    assert cache.hold_buffer_minutes("rst_001") == 30


def test_lookup_failure_returns_defaults_without_caching() -> None:
    repository = FakeSettingsRepository()
    repository.error = RuntimeError("database unavailable")
    cache = SettingsCache(repository, DEFAULTS)

    assert cache.get("rst_001") == DEFAULTS

    repository.error = None
    repository.rows["rst_001"] = ReservationSettingsRow(30, 2)
    assert cache.get("rst_001") == ReservationSettings(30, 2)
