"""Serialized apply-then-broadcast of balance mutations."""

from __future__ import annotations

import logging
from functools import lru_cache

from datastore.device_store import DeviceStateStore, build_default_store
from models.records import DeviceState, MutationCommand
from services.hub import ViewerHub
from services.mutations import apply_command
from settings import get_settings

logger = logging.getLogger(__name__)


class BalanceRelay:
    """Coordinates the state store, mutation logic and viewer fan-out."""

    def __init__(self, store: DeviceStateStore, hub: ViewerHub) -> None:
        self.store = store
        self.hub = hub

    def apply(self, device_id: str, command: MutationCommand, source: str = "api") -> DeviceState:
        """Apply ``command`` to ``device_id`` and push the result to its viewers.

        The device lock is held until fan-out completes so that concurrent
        producers cannot interleave on the same device.
        """
        with self.store.device_lock(device_id):
            current = self.store.get_or_create(device_id)
            updated = apply_command(current, command)
            self.store.put(updated)
            reached = self.hub.broadcast(device_id, updated)

        logger.info(
            "Applied balance mutation",
            extra={
                "device_id": device_id,
                "source": source,
                "amount_cents": updated.amount_cents,
                "delta_cents": command.delta_cents,
                "currency": updated.currency,
                "watchers": reached,
            },
        )
        return updated

    def add_delta(self, device_id: str, delta_cents: int, source: str = "api") -> DeviceState:
        return self.apply(device_id, MutationCommand.apply_delta(delta_cents), source=source)

    def set_absolute(
        self,
        device_id: str,
        amount_cents: int,
        currency: str | None = None,
        source: str = "api",
    ) -> DeviceState:
        command = MutationCommand.set_absolute(amount_cents, currency=currency)
        return self.apply(device_id, command, source=source)

    def current_state(self, device_id: str) -> DeviceState:
        return self.store.get_or_create(device_id)


@lru_cache
def build_default_hub() -> ViewerHub:
    settings = get_settings()
    return ViewerHub(store=build_default_store(), locale=settings.display_locale)


@lru_cache
def build_default_relay() -> BalanceRelay:
    """Factory that wires the relay with the process-wide store and hub."""
    return BalanceRelay(store=build_default_store(), hub=build_default_hub())
