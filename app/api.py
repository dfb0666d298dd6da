"""HTTP route definitions for the balance command surface."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, status

from app.schemas import DeviceStateModel, HealthResponse, PublishResponse, StateResponse
from models.records import DeviceState, MutationCommand, coerce_cents
from services.relay import BalanceRelay, build_default_relay
from telemetry.transport import ConnectionStatus, TelemetryTransport, build_default_transport

router = APIRouter()

SIMULATION_SOURCE = "simulation"


def get_relay() -> BalanceRelay:
    return build_default_relay()


def get_transport() -> TelemetryTransport:
    return build_default_transport()


def _state_response(state: DeviceState) -> StateResponse:
    return StateResponse(state=DeviceStateModel.from_state(state))


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check endpoint, including telemetry connection status.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck(
    transport: TelemetryTransport = Depends(get_transport),
) -> HealthResponse:
    return HealthResponse(telemetry=transport.status)


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "Open /<DEVICE_ID> to view a piggy bank."}


@router.post(
    "/api/iot/publish",
    response_model=PublishResponse,
    summary="Publish a message on the telemetry channel.",
)
async def publish_telemetry(
    body: Any = Body(default=None),
    transport: TelemetryTransport = Depends(get_transport),
) -> PublishResponse:
    if not isinstance(body, dict):
        body = {}
    topic = body.get("topic")
    payload = body.get("payload")
    if not isinstance(topic, str) or not topic.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="topic is required and must be a string.",
        )
    if not isinstance(payload, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="payload is required and must be an object.",
        )

    if not transport.publish(topic, payload):
        if transport.status is not ConnectionStatus.connected:
            detail = "Failed to publish message: telemetry connection unavailable."
        else:
            detail = "Failed to publish message on the telemetry channel."
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
        )
    return PublishResponse(topic=topic, payload=payload)


@router.get(
    "/api/{device_id}/state",
    response_model=StateResponse,
    summary="Fetch the current balance of a device.",
)
async def get_state(
    device_id: str,
    relay: BalanceRelay = Depends(get_relay),
) -> StateResponse:
    return _state_response(relay.current_state(device_id))


@router.post(
    "/api/{device_id}/add/{cents}",
    response_model=StateResponse,
    summary="Add (or subtract) an amount in cents.",
)
async def add_cents(
    device_id: str,
    cents: int,
    relay: BalanceRelay = Depends(get_relay),
) -> StateResponse:
    return _state_response(relay.add_delta(device_id, cents))


@router.post(
    "/api/{device_id}/set/{cents}",
    response_model=StateResponse,
    summary="Replace the balance with an absolute amount in cents.",
)
async def set_cents(
    device_id: str,
    cents: int,
    relay: BalanceRelay = Depends(get_relay),
) -> StateResponse:
    return _state_response(relay.set_absolute(device_id, cents))


@router.post(
    "/api/{device_id}/simulate-iot",
    response_model=StateResponse,
    summary="Apply a balance update as if it arrived over telemetry.",
)
async def simulate_telemetry(
    device_id: str,
    body: Any = Body(default=None),
    relay: BalanceRelay = Depends(get_relay),
) -> StateResponse:
    if not isinstance(body, dict):
        body = {}
    raw_amount = body.get("amountCents")
    if isinstance(raw_amount, bool) or not isinstance(raw_amount, (int, float)):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="amountCents must be a number.",
        )
    amount_cents = coerce_cents(raw_amount)
    if amount_cents is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="amountCents must be a whole number of cents.",
        )

    command = MutationCommand.from_payload({"amountCents": amount_cents, "currency": body.get("currency")})
    state = relay.apply(device_id, command, source=SIMULATION_SOURCE)
    return _state_response(state)
