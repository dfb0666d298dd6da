from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_state(payload: Dict[str, Any]) -> None:
    state = payload.get("state") or {}
    echo_heading("Device State")
    echo_key_values(
        [
            ("device_id", state.get("deviceId")),
            ("amount_cents", state.get("amountCents")),
            ("currency", state.get("currency")),
            ("updated_at", state.get("updatedAt")),
        ]
    )


def render_publish(payload: Dict[str, Any]) -> None:
    echo_heading("Published")
    echo_key_values([("topic", payload.get("topic")), ("payload", payload.get("payload"))])
