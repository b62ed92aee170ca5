"""Health, readiness and metrics endpoints for the operator process."""

import json
import logging
import time
from typing import Optional

from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .config import ServerConfig
from .engine import ControllerEngine
from .metrics import REPLICATION_REGISTRY

logger = logging.getLogger(__name__)


class HealthServer:
    def __init__(self, engine: ControllerEngine, config: Optional[ServerConfig] = None):
        self.engine = engine
        self.config = config or ServerConfig()
        self._runner: Optional[web.AppRunner] = None
        self.started_at = time.time()

    def create_app(self) -> web.Application:
        app = web.Application(middlewares=[self.logging_middleware])
        app.add_routes([
            web.get('/healthz', self.healthz),
            web.get('/readyz', self.readyz),
            web.get('/metrics', self.metrics),
            web.get('/status', self.status),
        ])
        return app

    async def start(self):
        """Start serving on the configured host and port."""
        runner = web.AppRunner(self.create_app())
        await runner.setup()
        site = web.TCPSite(runner, self.config.host, self.config.port)
        await site.start()
        self._runner = runner
        logger.info(f"Health server listening on {self.config.host}:{self.config.port}")

    async def stop(self):
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Health server stopped")

    @web.middleware
    async def logging_middleware(self, request, handler):
        start_time = time.time()
        response = await handler(request)
        logger.debug(f"{request.method} {request.path} -> {response.status} "
                     f"in {time.time() - start_time:.3f}s")
        return response

    async def healthz(self, request):
        return web.json_response({"status": "ok", "uptime": time.time() - self.started_at})

    async def readyz(self, request):
        """Ready once discovery has answered; 503 while it cannot."""
        try:
            available = await self.engine.discovery.get_available_backends()
        except Exception as e:
            logger.error(f"Readiness check failed: {e}")
            return web.json_response({"status": "not ready", "error": str(e)}, status=503)
        return web.json_response({
            "status": "ready",
            "backends": [backend.value for backend in available],
        })

    async def metrics(self, request):
        """Expose Prometheus metrics"""
        metrics_data = generate_latest(REPLICATION_REGISTRY)
        return web.Response(body=metrics_data, headers={"Content-Type": CONTENT_TYPE_LATEST})

    async def status(self, request):
        cached = self.engine.discovery.get_cached_result()
        body = {
            "engine": self.engine.get_metrics(),
            "discovery": cached.to_dict() if cached else None,
        }
        return web.Response(text=json.dumps(body, default=str), content_type="application/json")
