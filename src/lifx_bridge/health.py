"""Bridge health: a flag flipped by MQTT connectivity, optionally served over HTTP."""

from __future__ import annotations

import asyncio
import time

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from lifx_bridge.const import BRIDGE_VERSION, HEALTH_SRV_HOST
from lifx_bridge.logging_abstraction import get_logger

logger = get_logger(__name__)


class HealthState:
    """Healthy while the bridge holds a broker connection."""

    lp: str = "health:"

    def __init__(self) -> None:
        self._healthy: bool = False
        self.changed_at: float = time.time()

    @property
    def is_healthy(self) -> bool:
        return self._healthy

    def healthy_event(self) -> None:
        self._set(True)

    def unhealthy_event(self) -> None:
        self._set(False)

    def _set(self, healthy: bool) -> None:
        if healthy != self._healthy:
            logger.debug("%s %s", self.lp, "healthy" if healthy else "unhealthy")
            self.changed_at = time.time()
        self._healthy = healthy


def create_app(health: HealthState) -> FastAPI:
    app = FastAPI(title="lifx-mqtt-bridge", version=BRIDGE_VERSION)

    @app.get("/healthcheck")
    async def healthcheck() -> JSONResponse:
        body = {
            "status": "healthy" if health.is_healthy else "unhealthy",
            "since": health.changed_at,
            "version": BRIDGE_VERSION,
        }
        return JSONResponse(body, status_code=200 if health.is_healthy else 503)

    return app


class HealthServer:
    """uvicorn server lifecycle for the health endpoint."""

    lp: str = "HealthServer:"
    start_task: asyncio.Task[None] | None = None

    def __init__(self, health: HealthState, port: int, host: str = HEALTH_SRV_HOST) -> None:
        self.host: str = host
        self.port: int = port
        self.app: FastAPI = create_app(health)
        self.uvi_server: uvicorn.Server = uvicorn.Server(
            config=uvicorn.Config(
                self.app,
                host=host,
                port=port,
                log_config={
                    "version": 1,
                    "disable_existing_loggers": False,
                },
                log_level="warning",
            )
        )

    async def start(self) -> None:
        lp = f"{self.lp}start:"
        logger.info("%s Serving /healthcheck on %s:%s", lp, self.host, self.port)
        try:
            await self.uvi_server.serve()
        except asyncio.CancelledError:
            logger.info("%s health server stopped", lp)
            raise
        except Exception:
            logger.exception("%s Error running health server", lp)

    async def stop(self) -> None:
        lp = f"{self.lp}stop:"
        logger.debug("%s Stopping health server...", lp)
        self.uvi_server.should_exit = True
        if self.start_task and not self.start_task.done():
            _ = self.start_task.cancel()
