"""Domain models shared across services."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional


def coerce_cents(value: Any) -> Optional[int]:
    """Return ``value`` as whole cents, or ``None`` when it is not a usable number.

    Booleans, strings, non-finite floats and floats with a fractional part are
    all treated as absent.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    return None


def format_timestamp(value: datetime) -> str:
    """ISO-8601 in UTC with a trailing ``Z``, as sent on every channel."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def coerce_currency(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    candidate = value.strip().upper()
    return candidate or None


@dataclass(slots=True)
class DeviceState:
    """Current balance record of a single piggy bank."""

    device_id: str
    amount_cents: int
    currency: str
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "deviceId": self.device_id,
            "amountCents": self.amount_cents,
            "currency": self.currency,
            "updatedAt": format_timestamp(self.updated_at),
        }


@dataclass(frozen=True, slots=True)
class MutationCommand:
    """Balance change request; ``None`` marks a field as absent."""

    amount_cents: Optional[int] = None
    delta_cents: Optional[int] = None
    currency: Optional[str] = None

    @classmethod
    def set_absolute(cls, amount_cents: int, currency: Optional[str] = None) -> "MutationCommand":
        return cls(amount_cents=amount_cents, currency=currency)

    @classmethod
    def apply_delta(cls, delta_cents: int) -> "MutationCommand":
        return cls(delta_cents=delta_cents)

    @classmethod
    def set_currency(cls, currency: str) -> "MutationCommand":
        return cls(currency=currency)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "MutationCommand":
        """Build a command from an untrusted ``amountCents/deltaCents/currency`` mapping."""
        return cls(
            amount_cents=coerce_cents(payload.get("amountCents")),
            delta_cents=coerce_cents(payload.get("deltaCents")),
            currency=coerce_currency(payload.get("currency")),
        )

    @property
    def is_empty(self) -> bool:
        return self.amount_cents is None and self.delta_cents is None and self.currency is None
