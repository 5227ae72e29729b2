"""
Base service class for Campus Access Layer services.

Every service is a FastAPI app with the same outer surface: request
correlation and timing, ``/health``, ``/metrics`` and a uniform error body
(``code``, ``message``, ``retry``, ``details``).
"""

import os
import time
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST

from shared.config import ServiceConfig, get_config
from shared.errors import CampusError, ErrorResponse
from shared.logging import clear_context, configure_logging, get_logger, set_request_id
from shared.metrics import get_metrics_collector

VERSION = "1.0.0"
HEALTHY_STATES = ("ok", "closed")


class BaseService:
    """Shared wiring for the entitlements, identity and portal services."""

    def __init__(self, service_name: str, port: int, config: Optional[ServiceConfig] = None):
        self.service_name = service_name
        self.port = port
        self.config = config or get_config(service_name, port)

        configure_logging(service_name, self.config.log_level)
        self.logger = get_logger(service_name)
        self.metrics = get_metrics_collector(service_name)
        self._started_at = time.monotonic()

        self.app = self._create_app()
        self._setup_middleware()
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        @asynccontextmanager
        async def lifespan(app: FastAPI):
            await self.start()
            try:
                yield
            finally:
                await self.stop()

        local = self.config.env == "local"
        return FastAPI(
            title=f"Campus {self.service_name.title()} Service",
            version=VERSION,
            docs_url="/docs" if local else None,
            redoc_url=None,
            lifespan=lifespan,
        )

    def _setup_middleware(self):
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"] if self.config.env == "local" else [],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        @self.app.middleware("http")
        async def correlate_and_time(request: Request, call_next):
            request_id = set_request_id(request.headers.get("X-Request-ID"))
            started = time.perf_counter()
            try:
                response = await call_next(request)
                elapsed = time.perf_counter() - started

                self.metrics.record_http_request(request.method, request.url.path, response.status_code, elapsed)
                self.logger.info(
                    "HTTP request",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=round(elapsed * 1000, 2)
                )
                response.headers["X-Request-ID"] = request_id
                return response
            finally:
                clear_context()

    def _setup_routes(self):
        self.app.add_api_route("/health", self._health, methods=["GET"])
        self.app.add_api_route("/metrics", self._metrics_endpoint, methods=["GET"])
        self.app.add_exception_handler(CampusError, self._handle_campus_error)
        self.app.add_exception_handler(Exception, self._handle_unexpected_error)

    async def _health(self):
        """Liveness plus a per-dependency status map."""
        try:
            dependencies = await self._check_dependencies()
        except Exception as e:
            self.logger.error("Health check failed", error=str(e))
            self.metrics.record_health_check("error")
            return JSONResponse(
                status_code=503,
                content={"service": self.service_name, "status": "error", "error": str(e)}
            )

        status = "ok" if all(state in HEALTHY_STATES for state in dependencies.values()) else "degraded"
        self.metrics.record_health_check(status)
        return {
            "service": self.service_name,
            "status": status,
            "version": VERSION,
            "commit": os.getenv("GIT_COMMIT", "unknown"),
            "uptime_seconds": round(time.monotonic() - self._started_at, 3),
            "dependencies": dependencies,
        }

    async def _metrics_endpoint(self):
        return Response(content=self.metrics.export(), media_type=CONTENT_TYPE_LATEST)

    async def _handle_campus_error(self, request: Request, exc: CampusError):
        log = self.logger.error if exc.status_code >= 500 else self.logger.warning
        log("Request failed", code=exc.code, message=exc.message, details=exc.details, path=request.url.path)
        self.metrics.record_error(exc.code)
        return JSONResponse(status_code=exc.status_code, content=exc.to_response().model_dump())

    async def _handle_unexpected_error(self, request: Request, exc: Exception):
        self.logger.error("Unhandled exception", path=request.url.path, error=str(exc), exc_info=True)
        self.metrics.record_error("INTERNAL_ERROR")
        body = ErrorResponse(code="INTERNAL_ERROR", message="Internal server error", retry=False, details={})
        return JSONResponse(status_code=500, content=body.model_dump())

    async def _check_dependencies(self) -> Dict[str, str]:
        """Dependency name to status. Override in subclasses."""
        return {}

    async def start(self):
        """Acquire connections. Override in subclasses."""

    async def stop(self):
        """Release connections. Override in subclasses."""

    def run(self):
        import uvicorn
        uvicorn.run(self.app, host=self.config.host, port=self.port, log_level=self.config.log_level.lower())
