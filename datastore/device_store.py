from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from functools import lru_cache
from threading import Lock, RLock
from typing import Callable, Dict, Optional

from models.records import DeviceState
from settings import get_settings


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeviceStateStore:
    """Process-local balance records keyed by device identifier."""

    def __init__(
        self,
        default_currency: str = "EUR",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.default_currency = default_currency
        self._clock = clock
        self._items: Dict[str, DeviceState] = {}
        self._device_locks: Dict[str, RLock] = {}
        self._lock = Lock()

    def get_or_create(self, device_id: str) -> DeviceState:
        with self._lock:
            item = self._items.get(device_id)
            if item is None:
                item = DeviceState(
                    device_id=device_id,
                    amount_cents=0,
                    currency=self.default_currency,
                    updated_at=self._clock(),
                )
                self._items[device_id] = item
            return replace(item)

    def put(self, state: DeviceState) -> None:
        with self._lock:
            self._items[state.device_id] = replace(state)

    def device_lock(self, device_id: str) -> RLock:
        """Lock that serializes mutations (and their fan-out) for one device."""
        with self._lock:
            lock = self._device_locks.get(device_id)
            if lock is None:
                lock = RLock()
                self._device_locks[device_id] = lock
            return lock

    def device_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._items)


@lru_cache
def build_default_store(default_currency: Optional[str] = None) -> DeviceStateStore:
    settings = get_settings()
    currency = settings.default_currency if default_currency is None else default_currency
    return DeviceStateStore(default_currency=currency)
