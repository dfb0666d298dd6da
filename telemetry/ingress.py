"""Decoding of device telemetry into balance mutations."""

from __future__ import annotations

import json
import logging
from typing import Optional

from models.records import DeviceState, MutationCommand
from services.relay import BalanceRelay

logger = logging.getLogger(__name__)

TELEMETRY_SOURCE = "telemetry"


class TelemetryDecodeError(ValueError):
    """Raised when a telemetry payload is not a JSON object."""


def subscription_topic(prefix: str, suffix: str = "state") -> str:
    return f"{prefix.rstrip('/')}/+/{suffix.strip('/')}"


def device_id_from_topic(topic: str, prefix: str, suffix: str = "state") -> Optional[str]:
    """Return the wildcard segment of ``<prefix>/<device>/<suffix>``, if ``topic`` matches."""
    head = f"{prefix.rstrip('/')}/"
    tail = f"/{suffix.strip('/')}"
    if not topic.startswith(head) or not topic.endswith(tail):
        return None
    middle = topic[len(head) : len(topic) - len(tail)]
    if not middle or "/" in middle:
        return None
    return middle


def decode_payload(payload: bytes) -> MutationCommand:
    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise TelemetryDecodeError("Telemetry payload is not valid UTF-8.") from exc
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise TelemetryDecodeError(f"Telemetry payload is not valid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise TelemetryDecodeError("Telemetry payload must be a JSON object.")
    return MutationCommand.from_payload(data)


class TelemetryIngress:
    """Turns inbound telemetry messages into relay mutations."""

    def __init__(self, relay: BalanceRelay, prefix: str, suffix: str = "state") -> None:
        self.relay = relay
        self.prefix = prefix
        self.suffix = suffix

    @property
    def topic(self) -> str:
        return subscription_topic(self.prefix, self.suffix)

    def handle_message(self, topic: str, payload: bytes) -> Optional[DeviceState]:
        device_id = device_id_from_topic(topic, self.prefix, self.suffix)
        if device_id is None:
            logger.warning(
                "Dropping telemetry on unexpected topic",
                extra={"topic": topic, "reason": "topic mismatch"},
            )
            return None

        try:
            command = decode_payload(payload)
        except TelemetryDecodeError as exc:
            logger.warning(
                "Dropping undecodable telemetry",
                extra={"topic": topic, "device_id": device_id, "reason": str(exc)},
            )
            return None

        if command.is_empty:
            logger.debug(
                "Ignoring telemetry without balance fields",
                extra={"topic": topic, "device_id": device_id},
            )
            return None

        return self.relay.apply(device_id, command, source=TELEMETRY_SOURCE)
