from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from connectors.loopback import build_default_connector
from logging_config import configure_logging
from services.device import build_default_device


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    device = build_default_device()
    device.start()
    try:
        yield
    finally:
        device.stop()
        build_default_device.cache_clear()
        build_default_connector.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Simulated Telemetry Device",
        description="Simulated device driven through an in-process hub.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()
