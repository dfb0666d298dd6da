"""Unit tests for the in-memory device state store."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

from datastore.device_store import DeviceStateStore

_FIXED_TIME = datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)


def test_first_read_seeds_default_record() -> None:
    store = DeviceStateStore(default_currency="EUR", clock=lambda: _FIXED_TIME)

    state = store.get_or_create("pig-new")

    assert state.device_id == "pig-new"
    assert state.amount_cents == 0
    assert state.currency == "EUR"
    assert state.updated_at == _FIXED_TIME
    assert state.updated_at.tzinfo is not None


def test_get_or_create_is_idempotent_and_does_not_overwrite() -> None:
    store = DeviceStateStore()
    seeded = store.get_or_create("pig-1")
    store.put(replace(seeded, amount_cents=1234, currency="USD"))

    again = store.get_or_create("pig-1")

    assert again.amount_cents == 1234
    assert again.currency == "USD"


def test_returned_records_are_copies() -> None:
    store = DeviceStateStore()
    state = store.get_or_create("pig-1")

    state.amount_cents = 99

    assert store.get_or_create("pig-1").amount_cents == 0


def test_device_lock_is_stable_per_device() -> None:
    store = DeviceStateStore()

    assert store.device_lock("a") is store.device_lock("a")
    assert store.device_lock("a") is not store.device_lock("b")


def test_device_ids_lists_known_devices() -> None:
    store = DeviceStateStore()
    store.get_or_create("pig-b")
    store.get_or_create("pig-a")

    assert store.device_ids() == ["pig-a", "pig-b"]
