"""
Base service class for Notice Relay services.
"""

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from contextlib import asynccontextmanager
from typing import Dict, Any, Optional
import time
import os

from shared.config import ServiceConfig
from shared.logging import configure_logging, get_logger, set_request_id, clear_context
from shared.metrics import get_metrics_collector
from shared.errors import NoticeRelayException


class BaseService:
    """Base service class with common functionality."""

    def __init__(self, config: ServiceConfig):
        self.config = config
        self.service_name = config.service_name
        self.port = config.port

        configure_logging(self.service_name, self.config.log_level)

        self.logger = get_logger(f"{self.service_name}.service")
        self.metrics = get_metrics_collector(self.service_name)
        self._start_time = time.time()

        # Create FastAPI app
        self.app = self._create_app()

        # Set up middleware
        self._setup_middleware()

        # Set up routes
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            await self._on_startup()
            yield
            await self._on_shutdown()

        return FastAPI(
            title=f"{self.service_name.title()} Service",
            description=f"Notice Relay - {self.service_name.title()} Service",
            version="1.0.0",
            docs_url="/docs" if self.config.env == "local" else None,
            redoc_url="/redoc" if self.config.env == "local" else None,
            lifespan=lifespan,
        )

    def _setup_middleware(self):
        """Set up middleware."""

        @self.app.middleware("http")
        async def add_request_context(request: Request, call_next):
            request_id = set_request_id(request.headers.get("X-Request-ID"))
            start_time = time.time()
            # Unhandled exceptions escape call_next and become a 500 further out.
            status_code = 500

            try:
                response = await call_next(request)
                status_code = response.status_code
            finally:
                duration = time.time() - start_time

                self.metrics.record_http_request(
                    method=request.method,
                    endpoint=request.url.path,
                    status_code=status_code,
                    duration=duration
                )

                self.logger.info(
                    "HTTP request",
                    request_id=request_id,
                    client=request.client.host if request.client else None,
                    method=request.method,
                    path=request.url.path,
                    status_code=status_code,
                    duration_ms=round(duration * 1000, 2)
                )
                clear_context()

            response.headers["X-Request-ID"] = request_id
            return response

    def _setup_routes(self):
        """Set up common routes."""

        @self.app.get("/ping", response_class=PlainTextResponse)
        async def ping():
            """Liveness probe."""
            return "pong"

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint."""
            return {
                "service": self.service_name,
                "status": "ok",
                "uptime_seconds": self._get_uptime(),
                "dependencies": await self._check_dependencies(),
                "version": "1.0.0",
                "commit": os.getenv("GIT_COMMIT", "unknown")
            }

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            from prometheus_client import CONTENT_TYPE_LATEST
            return Response(
                content=self.metrics.render(),
                media_type=CONTENT_TYPE_LATEST
            )

        # Every relay error surfaces as a flat 500 carrying its message.
        @self.app.exception_handler(NoticeRelayException)
        async def relay_exception_handler(request: Request, exc: NoticeRelayException):
            """Handle NoticeRelayException."""
            self.logger.error(
                "Request failed",
                kind=exc.kind.value,
                message=exc.message,
                details=exc.details
            )
            self.metrics.record_error(exc.kind.value)
            return JSONResponse(
                status_code=500,
                content=exc.to_response().model_dump(),
                headers={"X-Error-Kind": exc.kind.value}
            )

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            """Handle general exceptions."""
            self.logger.error("Unhandled exception", error=str(exc), exc_info=exc)
            self.metrics.record_error("internal")
            return JSONResponse(
                status_code=500,
                content={"message": str(exc) or "internal error"},
                headers={"X-Error-Kind": "internal"}
            )

    async def _on_startup(self):
        """Startup hook. Override in subclasses."""

    async def _on_shutdown(self):
        """Shutdown hook. Override in subclasses."""

    async def _check_dependencies(self) -> Dict[str, Any]:
        """Check service dependencies. Override in subclasses."""
        return {}

    def _get_uptime(self) -> float:
        """Get service uptime in seconds."""
        return time.time() - self._start_time

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
