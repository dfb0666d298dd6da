from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from app.api import router
from app.live import router as live_router
from app.web import router as web_router
from datastore.device_store import build_default_store
from logging_config import configure_logging
from services.relay import build_default_hub, build_default_relay
from settings import get_settings
from telemetry.transport import build_default_ingress, build_default_transport


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    transport = build_default_transport()
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, transport.start)
    try:
        yield
    finally:
        await loop.run_in_executor(None, transport.stop)
        build_default_transport.cache_clear()
        build_default_ingress.cache_clear()
        build_default_relay.cache_clear()
        build_default_hub.cache_clear()
        build_default_store.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Pig Device",
        description="Live piggy-bank balances relayed from device telemetry to browsers.",
        version="0.1.0",
        lifespan=lifespan,
    )
    static_dir = Path(__file__).resolve().parent / "static"
    app.mount("/static", StaticFiles(directory=static_dir), name="static")
    app.include_router(router)
    app.include_router(live_router)
    # Catch-all device page goes last.
    app.include_router(web_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run("app.main:app", host=settings.host, port=settings.port, log_config=None)
