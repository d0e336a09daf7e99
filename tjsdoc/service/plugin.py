"""Plugin serving the control API with uvicorn while the coordinator stays resident."""

from __future__ import annotations

import asyncio
from typing import Any, Mapping, Optional

import uvicorn

from ..hooks import CompleteContext, ShutdownContext
from ..logging import get_logger
from .app import create_app

logger = get_logger("service")


class ServicePlugin:
    """Keeps the run alive and exposes `/regenerate` and `/shutdown` over HTTP."""

    name = "service"

    def __init__(self, options: Optional[Mapping[str, Any]] = None) -> None:
        options = dict(options or {})
        self.host = str(options.get("host", "127.0.0.1"))
        self.port = int(options.get("port", 8000))
        self.log_level = str(options.get("log_level", "warning"))
        self.server: Optional[uvicorn.Server] = None
        self._task: Optional[asyncio.Task[Any]] = None

    async def on_complete(self, context: CompleteContext) -> Mapping[str, Any]:
        if self._task is None:
            config = uvicorn.Config(
                create_app(context.control),
                host=self.host,
                port=self.port,
                log_level=self.log_level,
                lifespan="off",
            )
            self.server = uvicorn.Server(config)
            self._task = asyncio.create_task(self.server.serve())
            logger.info("service listening on http://%s:%d", self.host, self.port)
        return {"keep_alive": True}

    async def on_shutdown(self, context: ShutdownContext) -> None:
        if self.server is None or self._task is None:
            return
        self.server.should_exit = True
        await self._task
        self._task = None
        logger.info("service stopped")


def create_plugin(options: Optional[Mapping[str, Any]] = None) -> ServicePlugin:
    return ServicePlugin(options)


__all__ = ["ServicePlugin", "create_plugin"]
