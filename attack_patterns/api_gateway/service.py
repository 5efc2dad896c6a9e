import asyncio
import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from uvicorn import Config, Server

from .dependencies import current_engine, register_engine
from .routers import patterns
from .. import __version__
from ..config import Settings, settings as default_settings
from ..service_manager.base_service import BaseService

logger = logging.getLogger("attack-patterns.api-gateway")

__all__ = ["APIGatewayService", "app", "register_engine"]

app = FastAPI(title="Attack Pattern Engine", version=__version__)
app.add_middleware(
    CORSMiddleware,
    allow_origins=default_settings.API_CORS_ORIGINS,
    allow_methods=["GET", "POST", "PUT"],
    allow_headers=["*"],
)
app.include_router(patterns.router, prefix="/api/v1/patterns", tags=["Attack Patterns"])


@app.get("/health")
async def health():
    engine = current_engine()
    if engine is None:
        return {"status": "degraded", "components": {"engine": "unavailable"}}
    return {
        "status": "ok" if engine.running else "degraded",
        "components": {
            "engine": "running" if engine.running else "stopped",
            "analysis": "enabled" if engine.enabled else "disabled",
        },
    }


class APIGatewayService(BaseService):
    """
    API Gateway Service.
    Responsibility: Serve the REST interface used by the identity provider to
    submit events and by operators to inspect and toggle the engine.
    """

    def __init__(self, settings: Settings = default_settings):
        super().__init__("APIGatewayService")
        self.settings = settings
        self._server: Optional[Server] = None
        self._serve_task: Optional[asyncio.Task] = None

    async def start(self):
        self._server = Server(Config(
            app=app,
            host=self.settings.API_HOST,
            port=self.settings.API_PORT,
            log_level=self.settings.LOG_LEVEL.lower(),
        ))
        self._serve_task = asyncio.create_task(self._server.serve())
        self._running = True
        logger.info(f"REST API listening on {self.settings.API_HOST}:{self.settings.API_PORT}")

    async def stop(self):
        self._running = False
        if self._server is not None:
            self._server.should_exit = True
        if self._serve_task is not None:
            await self._serve_task
        logger.info("APIGatewayService stopped.")
