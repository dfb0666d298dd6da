from __future__ import annotations

import json
from pathlib import Path
from types import SimpleNamespace
from typing import Any, List, Tuple

import paho.mqtt.client as mqtt
import pytest

from telemetry.transport import (
    CERTIFICATE_FILE,
    PRIVATE_KEY_FILE,
    ROOT_CA_FILE,
    ConnectionStatus,
    MqttTelemetryTransport,
)

TOPIC = "smpg/devices/+/state"


class FakeClient:
    def __init__(self, client_id: str, connect_error: Exception | None = None) -> None:
        self.client_id = client_id
        self.connect_error = connect_error
        self.tls: dict[str, Any] = {}
        self.connected_to: Tuple[str, int] | None = None
        self.subscriptions: List[Tuple[str, int]] = []
        self.published: List[Tuple[str, str, int]] = []
        self.publish_rc = mqtt.MQTT_ERR_SUCCESS
        self.loop_running = False
        self.on_connect = None
        self.on_disconnect = None
        self.on_message = None

    def enable_logger(self, logger) -> None:
        self.logger = logger

    def tls_set(self, **kwargs: Any) -> None:
        self.tls = kwargs

    def connect(self, host: str, port: int, keepalive: int = 60) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.connected_to = (host, port)

    def loop_start(self) -> None:
        self.loop_running = True

    def loop_stop(self) -> None:
        self.loop_running = False

    def disconnect(self) -> None:
        self.connected_to = None

    def subscribe(self, topic: str, qos: int = 0) -> None:
        self.subscriptions.append((topic, qos))

    def publish(self, topic: str, payload: str, qos: int = 0) -> SimpleNamespace:
        self.published.append((topic, payload, qos))
        return SimpleNamespace(rc=self.publish_rc)


def _write_certificates(directory: Path) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    for name in (CERTIFICATE_FILE, PRIVATE_KEY_FILE, ROOT_CA_FILE):
        (directory / name).write_text("-----BEGIN TEST-----\n")


def _transport(tmp_path: Path, clients: list, **overrides: Any) -> MqttTelemetryTransport:
    received: list = overrides.pop("received", [])
    connect_error = overrides.pop("connect_error", None)

    def factory(client_id: str) -> FakeClient:
        client = FakeClient(client_id, connect_error=connect_error)
        clients.append(client)
        return client

    options: dict[str, Any] = {
        "endpoint": "example-ats.iot.eu-central-1.amazonaws.com",
        "region": "eu-central-1",
        "client_id": "pigdevice-test",
        "topic": TOPIC,
        "on_message": lambda topic, payload: received.append((topic, payload)),
        "certificates_dir": tmp_path / "certificates",
        "client_factory": factory,
    }
    options.update(overrides)
    return MqttTelemetryTransport(**options)


def _accept(transport: MqttTelemetryTransport, client: FakeClient) -> None:
    client.on_connect(client, None, None, SimpleNamespace(is_failure=False), None)


def test_missing_configuration_runs_degraded(tmp_path, caplog) -> None:
    clients: list = []
    transport = _transport(tmp_path, clients, endpoint=None)

    transport.start()

    assert transport.status is ConnectionStatus.disabled
    assert clients == []
    assert transport.publish("smpg/devices/pig-1/state", {"deltaCents": 1}) is False
    assert any("not configured" in record.getMessage() for record in caplog.records)


def test_missing_certificates_runs_degraded(tmp_path) -> None:
    clients: list = []
    transport = _transport(tmp_path, clients)

    transport.start()

    assert transport.status is ConnectionStatus.disabled
    assert clients == []


def test_connection_failure_is_not_raised(tmp_path) -> None:
    _write_certificates(tmp_path / "certificates")
    clients: list = []
    transport = _transport(tmp_path, clients, connect_error=OSError("no route to host"))

    transport.start()

    assert transport.status is ConnectionStatus.failed
    assert clients[0].loop_running is False


def test_connect_subscribes_and_dispatches_messages(tmp_path) -> None:
    _write_certificates(tmp_path / "certificates")
    clients: list = []
    received: list = []
    transport = _transport(tmp_path, clients, received=received)

    transport.start()
    client = clients[0]
    assert transport.status is ConnectionStatus.connecting
    assert client.tls["certfile"].endswith(CERTIFICATE_FILE)
    assert client.loop_running is True

    _accept(transport, client)
    client.on_message(client, None, SimpleNamespace(topic="smpg/devices/pig-1/state", payload=b"{}"))

    assert transport.status is ConnectionStatus.connected
    assert client.subscriptions == [(TOPIC, 1)]
    assert received == [("smpg/devices/pig-1/state", b"{}")]


def test_message_handler_errors_do_not_escape(tmp_path) -> None:
    _write_certificates(tmp_path / "certificates")
    clients: list = []

    def explode(topic: str, payload: bytes) -> None:
        raise RuntimeError("boom")

    transport = _transport(tmp_path, clients, on_message=explode)
    transport.start()
    client = clients[0]

    client.on_message(client, None, SimpleNamespace(topic="smpg/devices/x/state", payload=b"{}"))


def test_refused_connection_marks_failed(tmp_path) -> None:
    _write_certificates(tmp_path / "certificates")
    clients: list = []
    transport = _transport(tmp_path, clients)
    transport.start()
    client = clients[0]

    client.on_connect(client, None, None, SimpleNamespace(is_failure=True), None)

    assert transport.status is ConnectionStatus.failed
    assert client.subscriptions == []


def test_publish_requires_connection(tmp_path) -> None:
    _write_certificates(tmp_path / "certificates")
    clients: list = []
    transport = _transport(tmp_path, clients)
    transport.start()

    assert transport.publish("smpg/devices/pig-1/state", {"deltaCents": 5}) is False
    assert clients[0].published == []


def test_publish_encodes_json(tmp_path) -> None:
    _write_certificates(tmp_path / "certificates")
    clients: list = []
    transport = _transport(tmp_path, clients)
    transport.start()
    client = clients[0]
    _accept(transport, client)

    ok = transport.publish("smpg/devices/pig-1/state", {"deltaCents": 5})

    assert ok is True
    topic, message, qos = client.published[0]
    assert topic == "smpg/devices/pig-1/state"
    assert json.loads(message) == {"deltaCents": 5}
    assert qos == 1


@pytest.mark.parametrize("rc", [mqtt.MQTT_ERR_NO_CONN, mqtt.MQTT_ERR_QUEUE_SIZE])
def test_publish_reports_client_errors(tmp_path, rc: int) -> None:
    _write_certificates(tmp_path / "certificates")
    clients: list = []
    transport = _transport(tmp_path, clients)
    transport.start()
    client = clients[0]
    _accept(transport, client)
    client.publish_rc = rc

    assert transport.publish("smpg/devices/pig-1/state", {"deltaCents": 5}) is False


def test_stop_is_idempotent(tmp_path) -> None:
    _write_certificates(tmp_path / "certificates")
    clients: list = []
    transport = _transport(tmp_path, clients)
    transport.start()
    _accept(transport, clients[0])

    transport.stop()
    transport.stop()

    assert transport.status is ConnectionStatus.disconnected
    assert clients[0].loop_running is False
