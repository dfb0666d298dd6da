from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from services.presentation import clock_label, donation_url, format_amount, qr_data_uri
from services.relay import BalanceRelay, build_default_relay
from settings import Settings, get_settings


templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))


def get_relay() -> BalanceRelay:
    return build_default_relay()


def get_page_settings() -> Settings:
    return get_settings()


router = APIRouter(include_in_schema=False)


@router.get("/{device_id}", name="device_page", response_class=HTMLResponse)
async def device_page(
    request: Request,
    device_id: str,
    relay: BalanceRelay = Depends(get_relay),
    settings: Settings = Depends(get_page_settings),
) -> HTMLResponse:
    state = relay.current_state(device_id)
    base_url = settings.donation_base_url or str(request.base_url)
    url = donation_url(device_id, base_url)

    return templates.TemplateResponse(
        request,
        "device.html",
        {
            "device_id": device_id,
            "state": state,
            "clock": clock_label(),
            "amount_formatted": format_amount(
                state.amount_cents, state.currency, settings.display_locale
            ),
            "donation_url": url,
            "qr_data_uri": qr_data_uri(url),
        },
    )
