"""Display helpers for balances pushed to viewers and rendered on the device page."""

from __future__ import annotations

import time
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from urllib.parse import quote

import segno
from babel.core import UnknownLocaleError
from babel.numbers import format_currency

from models.records import DeviceState

DEFAULT_LOCALE = "de_DE"


def format_amount(amount_cents: int, currency: str, locale: str = DEFAULT_LOCALE) -> str:
    amount = Decimal(amount_cents) / 100
    try:
        return format_currency(amount, currency, locale=locale)
    except (UnknownLocaleError, ValueError):
        return f"{amount:.2f} {currency}"


def clock_label(now: Optional[datetime] = None) -> str:
    moment = now or datetime.now()
    return moment.strftime("%H:%M")


def build_state_event(state: DeviceState, locale: str = DEFAULT_LOCALE) -> dict[str, Any]:
    """Full ``device-state`` payload, derived fields computed at call time."""
    payload = state.to_dict()
    payload["amountFormatted"] = format_amount(state.amount_cents, state.currency, locale)
    payload["clock"] = clock_label()
    return payload


def donation_url(device_id: str, base_url: str, timestamp_ms: Optional[int] = None) -> str:
    stamp = int(time.time() * 1000) if timestamp_ms is None else timestamp_ms
    return f"{base_url.rstrip('/')}/{quote(device_id, safe='')}?t={stamp}"


def qr_data_uri(data: str, scale: int = 5, border: int = 1) -> str:
    """Encode ``data`` as a QR code and return it as a PNG data URI."""
    code = segno.make(data, error="m")
    return code.png_data_uri(scale=scale, border=border)
