"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel

from models.records import DeviceState, format_timestamp
from telemetry.transport import ConnectionStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DeviceStateModel(CamelModel):
    """Balance record exposed via the API."""

    device_id: str
    amount_cents: int = Field(..., description="Signed balance in minor currency units.")
    currency: str
    updated_at: datetime

    @classmethod
    def from_state(cls, state: DeviceState) -> "DeviceStateModel":
        return cls(
            device_id=state.device_id,
            amount_cents=state.amount_cents,
            currency=state.currency,
            updated_at=state.updated_at,
        )

    @field_serializer("updated_at")
    def serialize_updated_at(self, value: datetime) -> str:
        return format_timestamp(value)


class StateResponse(BaseModel):
    """Response returned by every balance command."""

    ok: bool = True
    state: DeviceStateModel


class PublishResponse(BaseModel):
    ok: bool = True
    topic: str
    payload: Dict[str, Any]


class HealthResponse(BaseModel):
    status: str = "ok"
    telemetry: ConnectionStatus
