"""
Health Server - HTTP liveness and counters

Module: core.health_server
Date: 2025-11-23
Version: 0.1.0

CHANGELOG:
[2025-11-23 v0.1.0] Initial implementation
  - GET /health: store ping + bus connection state
  - GET /stats: handler counters

ARCHITECTURE:
Small aiohttp application started next to the bus subscriptions. It only
reads service state; it never touches reservations.
"""

import logging
import time
from typing import Optional

from aiohttp import web

from .constants import SERVER_NAME, SERVER_VERSION


class HealthServer:
    """aiohttp endpoint exposing UniqService health"""

    def __init__(self, service, host: str, port: int):
        """
        Initialize health server

        Args:
            service: UniqService to report on
            host: Bind address
            port: Bind port
        """
        self.logger = logging.getLogger("core.health_server")
        self.service = service
        self.host = host
        self.port = port
        self.app = web.Application()
        self.app.router.add_get("/health", self._health_handler)
        self.app.router.add_get("/stats", self._stats_handler)
        self.runner: Optional[web.AppRunner] = None

    async def start(self) -> None:
        """Start listening"""
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, self.host, self.port)
        await site.start()
        self.logger.info(f"Health endpoint on http://{self.host}:{self.port}/health")

    async def stop(self) -> None:
        """Stop listening"""
        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None
            self.logger.info("Health endpoint stopped")

    async def _health_handler(self, request: web.Request) -> web.Response:
        started = time.monotonic()
        health = await self.service.check_health()
        health["latency_ms"] = round((time.monotonic() - started) * 1000, 2)
        status = 200 if health["status"] == "healthy" else 503
        return web.json_response(health, status=status)

    async def _stats_handler(self, request: web.Request) -> web.Response:
        return web.json_response({
            "name": SERVER_NAME,
            "version": SERVER_VERSION,
            **self.service.get_stats(),
        })
