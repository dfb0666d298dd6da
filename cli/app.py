from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_publish, render_state


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for driving piggy-bank balances through the relay service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Relay base URL (defaults to API_BASE_URL env or http://localhost:4090).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("add")
def add_command(
    ctx: typer.Context,
    device_id: str = typer.Argument(..., help="Device identifier."),
    cents: int = typer.Argument(..., help="Cents to add; negative values subtract."),
) -> None:
    """Add an amount to a device balance."""
    state = _get_state(ctx)
    render_state(state.client.add(device_id, cents))


@app.command("set")
def set_command(
    ctx: typer.Context,
    device_id: str = typer.Argument(..., help="Device identifier."),
    cents: int = typer.Argument(..., help="New absolute balance in cents."),
) -> None:
    """Replace a device balance."""
    state = _get_state(ctx)
    render_state(state.client.set(device_id, cents))


@app.command("simulate")
def simulate_command(
    ctx: typer.Context,
    device_id: str = typer.Argument(..., help="Device identifier."),
    amount_cents: int = typer.Argument(..., help="Absolute balance reported by the device."),
    currency: Optional[str] = typer.Option(None, "--currency", "-c", help="ISO currency code."),
) -> None:
    """Apply a balance update as if the device had reported it."""
    state = _get_state(ctx)
    render_state(state.client.simulate(device_id, amount_cents, currency))


@app.command("state")
def state_command(
    ctx: typer.Context,
    device_id: str = typer.Argument(..., help="Device identifier."),
) -> None:
    """Show the current balance of a device."""
    state = _get_state(ctx)
    render_state(state.client.state(device_id))


@app.command("publish")
def publish_command(
    ctx: typer.Context,
    topic: str = typer.Argument(..., help="Telemetry topic, e.g. smpg/devices/pig-1/state."),
    payload: str = typer.Argument(..., help="JSON object to publish."),
) -> None:
    """Publish a JSON message on the telemetry channel."""
    try:
        body = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"Payload is not valid JSON: {exc.msg}") from exc
    if not isinstance(body, dict):
        raise typer.BadParameter("Payload must be a JSON object.")
    state = _get_state(ctx)
    render_publish(state.client.publish(topic, body))
