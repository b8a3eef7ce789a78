"""Salvo ASGI entrypoint (FastAPI + WebSocket)."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Request

from src.salvo.api.routes.play import ConnectionHub
from src.salvo.api.routes.play import router as play_router
from src.salvo.core.config import APP_VERSION, IDLE_SWEEP_INTERVAL_SECONDS, LOG_LEVEL
from src.salvo.rooms.coordinator import GameCoordinator

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    hub = ConnectionHub()
    coordinator = GameCoordinator(hub)
    app.state.hub = hub
    app.state.coordinator = coordinator

    sweeper = asyncio.create_task(
        coordinator.run_idle_sweeper(IDLE_SWEEP_INTERVAL_SECONDS),
        name="idle-sweeper",
    )
    logger.info("Salvo %s ready", APP_VERSION)
    try:
        yield
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        await coordinator.shutdown()


app = FastAPI(title="Salvo", version=APP_VERSION, lifespan=lifespan)


@app.get("/health")
async def health(request: Request) -> dict[str, str | int]:
    coordinator: GameCoordinator | None = getattr(request.app.state, "coordinator", None)
    return {
        "status": "ok",
        "ts": datetime.now(UTC).isoformat(),
        "rooms": coordinator.active_room_count if coordinator else 0,
    }


app.include_router(play_router)
