from __future__ import annotations

import os
import secrets
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_HOST_ENV = "HOST"
_PORT_ENV = "PORT"
_LOG_LEVEL_ENV = "LOG_LEVEL"
_DEFAULT_CURRENCY_ENV = "DEFAULT_CURRENCY"
_DISPLAY_LOCALE_ENV = "DISPLAY_LOCALE"
_DONATION_BASE_URL_ENV = "DONATION_BASE_URL"
_IOT_ENDPOINT_ENV = "IOT_ENDPOINT"
_IOT_REGION_ENV = "IOT_REGION"
_IOT_PORT_ENV = "IOT_PORT"
_IOT_CLIENT_ID_ENV = "IOT_CLIENT_ID"
_IOT_TOPIC_PREFIX_ENV = "IOT_TOPIC_BALANCE_PREFIX"
_IOT_TOPIC_SUFFIX_ENV = "IOT_TOPIC_BALANCE_SUFFIX"
_IOT_CERTIFICATES_DIR_ENV = "IOT_CERTIFICATES_DIR"


@dataclass(frozen=True)
class Settings:
    host: str
    port: int
    log_level: str
    default_currency: str
    display_locale: str
    donation_base_url: Optional[str]
    iot_endpoint: Optional[str]
    iot_region: Optional[str]
    iot_port: int
    iot_client_id: str
    iot_topic_prefix: str
    iot_topic_suffix: str
    iot_certificates_dir: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_port(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if 0 < parsed < 65536 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        host=_read_str_env(_HOST_ENV, "0.0.0.0"),
        port=_read_port(_PORT_ENV, 4090),
        log_level=_read_log_level("INFO"),
        default_currency=_read_str_env(_DEFAULT_CURRENCY_ENV, "EUR").upper(),
        display_locale=_read_str_env(_DISPLAY_LOCALE_ENV, "de_DE"),
        donation_base_url=_read_optional_env(_DONATION_BASE_URL_ENV),
        iot_endpoint=_read_optional_env(_IOT_ENDPOINT_ENV),
        iot_region=_read_optional_env(_IOT_REGION_ENV),
        iot_port=_read_port(_IOT_PORT_ENV, 8883),
        iot_client_id=_read_str_env(
            _IOT_CLIENT_ID_ENV, f"pigdevice-{secrets.randbelow(1_000_000)}"
        ),
        iot_topic_prefix=_read_str_env(_IOT_TOPIC_PREFIX_ENV, "smpg/devices").rstrip("/"),
        iot_topic_suffix=_read_str_env(_IOT_TOPIC_SUFFIX_ENV, "state").strip("/"),
        iot_certificates_dir=_read_str_env(_IOT_CERTIFICATES_DIR_ENV, "./certificates"),
    )
