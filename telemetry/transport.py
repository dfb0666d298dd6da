"""MQTT transport for the device telemetry channel (AWS IoT Core, mutual TLS)."""

from __future__ import annotations

import json
import logging
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

import paho.mqtt.client as mqtt

from services.relay import build_default_relay
from settings import Settings, get_settings
from telemetry.ingress import TelemetryIngress

logger = logging.getLogger(__name__)

CERTIFICATE_FILE = "certificate.pem"
PRIVATE_KEY_FILE = "private-key.pem"
ROOT_CA_FILE = "AmazonRootCA3.pem"

MessageHandler = Callable[[str, bytes], Any]
ClientFactory = Callable[[str], mqtt.Client]


class ConnectionStatus(str, Enum):
    """Lifecycle of the telemetry connection."""

    disabled = "disabled"
    connecting = "connecting"
    connected = "connected"
    disconnected = "disconnected"
    failed = "failed"


class TelemetryTransport(Protocol):
    @property
    def status(self) -> ConnectionStatus: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def publish(self, topic: str, payload: Any) -> bool: ...


def _default_client_factory(client_id: str) -> mqtt.Client:
    return mqtt.Client(
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        client_id=client_id,
        clean_session=True,
        protocol=mqtt.MQTTv311,
    )


class MqttTelemetryTransport:
    """Threaded paho-mqtt connection that subscribes once and publishes on request.

    Missing configuration or a failed connection leaves the transport in a
    degraded state; nothing here raises into the host process.
    """

    def __init__(
        self,
        *,
        endpoint: Optional[str],
        region: Optional[str],
        client_id: str,
        topic: str,
        on_message: MessageHandler,
        certificates_dir: Path,
        port: int = 8883,
        keepalive: int = 60,
        client_factory: ClientFactory = _default_client_factory,
    ) -> None:
        self.endpoint = endpoint
        self.region = region
        self.client_id = client_id
        self.topic = topic
        self.certificates_dir = certificates_dir
        self.port = port
        self._keepalive = keepalive
        self._on_message = on_message
        self._client_factory = client_factory
        self._client: Optional[mqtt.Client] = None
        self._status = ConnectionStatus.disabled

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._status is ConnectionStatus.connected

    def certificate_paths(self) -> tuple[Path, Path, Path]:
        return (
            self.certificates_dir / CERTIFICATE_FILE,
            self.certificates_dir / PRIVATE_KEY_FILE,
            self.certificates_dir / ROOT_CA_FILE,
        )

    def start(self) -> None:
        self.stop()
        if not self.endpoint or not self.region:
            logger.warning(
                "Telemetry not configured; running without device updates",
                extra={"reason": "IOT_ENDPOINT and IOT_REGION are required"},
            )
            self._status = ConnectionStatus.disabled
            return

        cert_path, key_path, ca_path = self.certificate_paths()
        missing = [path.name for path in (cert_path, key_path, ca_path) if not path.is_file()]
        if missing:
            logger.warning(
                "Telemetry certificates not found; running without device updates",
                extra={"reason": f"missing {', '.join(missing)} in {self.certificates_dir}"},
            )
            self._status = ConnectionStatus.disabled
            return

        logger.info(
            "Connecting to telemetry broker %s:%s (region %s) as %s",
            self.endpoint,
            self.port,
            self.region,
            self.client_id,
        )
        self._status = ConnectionStatus.connecting
        client = self._client_factory(self.client_id)
        client.enable_logger(logging.getLogger("paho.mqtt.client"))
        client.on_connect = self._handle_connect
        client.on_disconnect = self._handle_disconnect
        client.on_message = self._handle_message
        try:
            client.tls_set(
                ca_certs=str(ca_path),
                certfile=str(cert_path),
                keyfile=str(key_path),
            )
            client.connect(self.endpoint, self.port, keepalive=self._keepalive)
        except (OSError, ValueError) as exc:
            logger.error(
                "Telemetry connection failed; running without device updates",
                extra={"reason": str(exc), "status": ConnectionStatus.failed.value},
            )
            self._status = ConnectionStatus.failed
            return

        client.loop_start()
        self._client = client

    def stop(self) -> None:
        client = self._client
        self._client = None
        if client is None:
            return
        try:
            client.disconnect()
        finally:
            client.loop_stop()
            self._status = ConnectionStatus.disconnected
            logger.info("Telemetry connection closed")

    def publish(self, topic: str, payload: Any) -> bool:
        client = self._client
        if client is None or not self.is_connected:
            logger.error(
                "Cannot publish: telemetry connection not established",
                extra={"topic": topic, "status": self._status.value},
            )
            return False

        try:
            message = json.dumps(payload)
            info = client.publish(topic, message, qos=1)
        except (TypeError, ValueError, OSError, RuntimeError) as exc:
            logger.error("Failed to publish telemetry", extra={"topic": topic, "reason": str(exc)})
            return False

        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.error(
                "Failed to publish telemetry",
                extra={"topic": topic, "reason": mqtt.error_string(info.rc)},
            )
            return False

        logger.info("Published telemetry", extra={"topic": topic})
        return True

    def _handle_connect(
        self,
        client: mqtt.Client,
        _userdata: Any,
        _flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if reason_code.is_failure:
            logger.warning(
                "Telemetry broker refused connection",
                extra={"reason": str(reason_code), "status": ConnectionStatus.failed.value},
            )
            self._status = ConnectionStatus.failed
            return
        self._status = ConnectionStatus.connected
        client.subscribe(self.topic, qos=1)
        logger.info("Subscribed to telemetry", extra={"topic": self.topic})

    def _handle_disconnect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if self._client is not None:
            logger.warning("Telemetry connection lost", extra={"reason": str(reason_code)})
            self._status = ConnectionStatus.disconnected

    def _handle_message(self, _client: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
        try:
            self._on_message(msg.topic, msg.payload)
        except Exception:  # noqa: BLE001 - keep the network loop alive
            logger.exception("Telemetry message handling failed", extra={"topic": msg.topic})


def build_transport(settings: Settings, ingress: TelemetryIngress) -> MqttTelemetryTransport:
    return MqttTelemetryTransport(
        endpoint=settings.iot_endpoint,
        region=settings.iot_region,
        client_id=settings.iot_client_id,
        topic=ingress.topic,
        on_message=ingress.handle_message,
        certificates_dir=Path(settings.iot_certificates_dir),
        port=settings.iot_port,
    )


@lru_cache
def build_default_ingress() -> TelemetryIngress:
    settings = get_settings()
    return TelemetryIngress(
        relay=build_default_relay(),
        prefix=settings.iot_topic_prefix,
        suffix=settings.iot_topic_suffix,
    )


@lru_cache
def build_default_transport() -> MqttTelemetryTransport:
    """Factory that wires the MQTT transport to the default ingress."""
    return build_transport(get_settings(), build_default_ingress())
