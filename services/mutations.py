"""Pure balance mutation logic."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from models.records import DeviceState, MutationCommand, coerce_cents, coerce_currency


def apply_command(
    state: DeviceState,
    command: MutationCommand,
    now: Optional[datetime] = None,
) -> DeviceState:
    """Return a copy of ``state`` with ``command`` applied.

    An absolute amount is applied before a delta when a command carries both.
    Fields whose values have the wrong type are skipped.
    """
    amount = state.amount_cents
    currency = state.currency

    absolute = coerce_cents(command.amount_cents)
    if absolute is not None:
        amount = absolute

    delta = coerce_cents(command.delta_cents)
    if delta is not None:
        amount += delta

    new_currency = coerce_currency(command.currency)
    if new_currency is not None:
        currency = new_currency

    timestamp = now or datetime.now(timezone.utc)
    if timestamp < state.updated_at:
        timestamp = state.updated_at

    return replace(state, amount_cents=amount, currency=currency, updated_at=timestamp)
