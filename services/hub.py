"""Viewer registry and state fan-out."""

from __future__ import annotations

import logging
from threading import Lock
from typing import Any, Dict, Protocol, Set

from datastore.device_store import DeviceStateStore
from models.records import DeviceState
from services.presentation import DEFAULT_LOCALE, build_state_event

logger = logging.getLogger(__name__)

DEVICE_STATE_EVENT = "device-state"


class Connection(Protocol):
    """A live viewer. ``send`` must return without waiting on the network."""

    connection_id: str

    def send(self, event: str, data: Dict[str, Any]) -> None: ...


class ViewerHub:
    """Tracks which connections watch which devices and pushes state to them."""

    def __init__(self, store: DeviceStateStore, locale: str = DEFAULT_LOCALE) -> None:
        self.store = store
        self.locale = locale
        self._watchers: Dict[str, Dict[str, Connection]] = {}
        self._watching: Dict[str, Set[str]] = {}
        self._lock = Lock()

    def join(self, connection: Connection, device_id: str) -> DeviceState:
        """Watch ``device_id`` and send its current state to ``connection`` only.

        Joining does not leave devices the connection already watches.
        """
        with self.store.device_lock(device_id):
            with self._lock:
                self._watchers.setdefault(device_id, {})[connection.connection_id] = connection
                self._watching.setdefault(connection.connection_id, set()).add(device_id)
            state = self.store.get_or_create(device_id)
            self._deliver(connection, device_id, build_state_event(state, self.locale))
        logger.info(
            "Viewer joined device",
            extra={"device_id": device_id, "connection_id": connection.connection_id},
        )
        return state

    def leave(self, connection: Connection, device_id: str) -> None:
        with self._lock:
            self._discard(connection.connection_id, device_id)

    def close(self, connection: Connection) -> None:
        with self._lock:
            device_ids = self._watching.pop(connection.connection_id, set())
            for device_id in device_ids:
                self._discard(connection.connection_id, device_id)
        logger.debug(
            "Viewer closed",
            extra={"connection_id": connection.connection_id, "watchers": len(device_ids)},
        )

    def broadcast(self, device_id: str, state: DeviceState) -> int:
        """Send ``state`` to every watcher of ``device_id``; returns the number reached."""
        with self._lock:
            targets = list(self._watchers.get(device_id, {}).values())
        if not targets:
            return 0

        payload = build_state_event(state, self.locale)
        delivered = 0
        for connection in targets:
            if self._deliver(connection, device_id, payload):
                delivered += 1
        return delivered

    def watchers(self, device_id: str) -> list[str]:
        with self._lock:
            return sorted(self._watchers.get(device_id, {}))

    def watched_devices(self, connection: Connection) -> list[str]:
        with self._lock:
            return sorted(self._watching.get(connection.connection_id, set()))

    @property
    def connection_count(self) -> int:
        with self._lock:
            return len(self._watching)

    def _discard(self, connection_id: str, device_id: str) -> None:
        watchers = self._watchers.get(device_id)
        if watchers is not None:
            watchers.pop(connection_id, None)
            if not watchers:
                del self._watchers[device_id]
        watching = self._watching.get(connection_id)
        if watching is not None:
            watching.discard(device_id)
            if not watching:
                del self._watching[connection_id]

    @staticmethod
    def _deliver(connection: Connection, device_id: str, payload: Dict[str, Any]) -> bool:
        try:
            connection.send(DEVICE_STATE_EVENT, payload)
        except Exception as exc:  # noqa: BLE001 - one viewer must not break fan-out
            logger.warning(
                "Dropping push to viewer",
                extra={
                    "device_id": device_id,
                    "connection_id": connection.connection_id,
                    "reason": str(exc),
                },
            )
            return False
        return True
