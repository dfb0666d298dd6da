from __future__ import annotations

from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the relay's command surface."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def add(self, device_id: str, cents: int) -> Dict[str, Any]:
        return self._request("POST", f"/api/{_segment(device_id)}/add/{cents}")

    def set(self, device_id: str, cents: int) -> Dict[str, Any]:
        return self._request("POST", f"/api/{_segment(device_id)}/set/{cents}")

    def simulate(self, device_id: str, amount_cents: int, currency: Optional[str] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {"amountCents": amount_cents}
        if currency:
            body["currency"] = currency
        return self._request("POST", f"/api/{_segment(device_id)}/simulate-iot", json=body)

    def state(self, device_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/{_segment(device_id)}/state")

    def publish(self, topic: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/api/iot/publish", json={"topic": topic, "payload": payload})

    def _request(self, method: str, url: str, json: Any = None) -> Dict[str, Any]:
        try:
            response = self._client.request(method, url, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(f"Could not reach {self._config.base_url}: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1) from exc
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


def _segment(device_id: str) -> str:
    return quote(device_id, safe="")
