from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import pytest
from typer.testing import CliRunner

from cli.app import app


class StubClient:
    def __init__(self, config) -> None:
        self.config = config
        self.calls: List[Tuple[str, tuple]] = []
        self.closed = False

    def _state(self, device_id: str, amount_cents: int, currency: str = "EUR") -> Dict[str, Any]:
        return {
            "ok": True,
            "state": {
                "deviceId": device_id,
                "amountCents": amount_cents,
                "currency": currency,
                "updatedAt": "2024-01-01T00:00:00Z",
            },
        }

    def add(self, device_id: str, cents: int) -> Dict[str, Any]:
        self.calls.append(("add", (device_id, cents)))
        return self._state(device_id, cents)

    def set(self, device_id: str, cents: int) -> Dict[str, Any]:
        self.calls.append(("set", (device_id, cents)))
        return self._state(device_id, cents)

    def simulate(self, device_id: str, amount_cents: int, currency: Optional[str] = None) -> Dict[str, Any]:
        self.calls.append(("simulate", (device_id, amount_cents, currency)))
        return self._state(device_id, amount_cents, currency or "EUR")

    def state(self, device_id: str) -> Dict[str, Any]:
        self.calls.append(("state", (device_id,)))
        return self._state(device_id, 0)

    def publish(self, topic: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append(("publish", (topic, payload)))
        return {"ok": True, "topic": topic, "payload": payload}

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def stub(monkeypatch) -> StubClient:
    client = StubClient(config=None)

    def factory(config):
        client.config = config
        return client

    monkeypatch.setattr("cli.app.ApiClient", factory)
    return client


def test_add_command(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["add", "pig-1", "150"])

    assert result.exit_code == 0
    assert "amount_cents: 150" in result.stdout
    assert stub.calls == [("add", ("pig-1", 150))]
    assert stub.closed is True


def test_add_accepts_negative_cents(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["add", "pig-1", "--", "-40"])

    assert result.exit_code == 0
    assert stub.calls == [("add", ("pig-1", -40))]


def test_simulate_command_with_currency(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["--base-url", "http://relay:9000/", "simulate", "pig-1", "500", "-c", "USD"])

    assert result.exit_code == 0
    assert "currency: USD" in result.stdout
    assert stub.config.base_url == "http://relay:9000"
    assert stub.calls == [("simulate", ("pig-1", 500, "USD"))]


def test_state_command(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["state", "pig-7"])

    assert result.exit_code == 0
    assert "device_id: pig-7" in result.stdout


def test_publish_command_parses_json(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["publish", "smpg/devices/pig-1/state", '{"deltaCents": 5}'])

    assert result.exit_code == 0
    assert stub.calls == [("publish", ("smpg/devices/pig-1/state", {"deltaCents": 5}))]
    assert "Published" in result.stdout


def test_publish_command_rejects_invalid_json(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["publish", "smpg/devices/pig-1/state", "{nope"])

    assert result.exit_code != 0
    assert stub.calls == []
