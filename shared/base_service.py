"""
Base service class for the Atlas OS gateway.
"""

import os
import time
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException

from shared.config import GatewaySettings, get_settings
from shared.errors import AccessLayerException, ErrorBody, ErrorResponse, current_trace_id
from shared.logging import clear_context, configure_logging, get_logger, set_request_id
from shared.metrics import get_metrics_collector

_HTTP_ERROR_CODES = {
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


def error_payload(code: str, message: str, details: Optional[dict] = None) -> dict:
    """Render an error envelope for errors that are not AccessLayerExceptions."""
    return ErrorResponse(
        error=ErrorBody(code=code, message=message, details=details or {}, trace_id=current_trace_id())
    ).model_dump()


class BaseService:
    """Base service class with common functionality."""

    def __init__(self, service_name: str, settings: Optional[GatewaySettings] = None):
        self.service_name = service_name
        self.config = settings or get_settings()
        self.logger = get_logger(service_name)
        self.metrics = get_metrics_collector(service_name)
        self._start_time = time.time()

        configure_logging(service_name, self.config.log_level)

        self.app = self._create_app()

        if self.config.enable_tracing:
            from shared.tracing import configure_tracing

            configure_tracing(
                service_name,
                self.config.otel_exporter,
                self.config.enable_console_tracing,
                environment=self.config.env,
                app=self.app,
            )

        self._setup_middleware()
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            await self.on_startup()
            try:
                yield
            finally:
                await self.on_shutdown()

        return FastAPI(
            title=f"Atlas OS {self.service_name.title()}",
            description=f"Atlas OS - {self.service_name.title()} Service",
            version="1.0.0",
            docs_url="/docs" if self.config.env == "local" else None,
            redoc_url="/redoc" if self.config.env == "local" else None,
            lifespan=lifespan,
        )

    async def on_startup(self) -> None:
        """Open connections. Override in subclasses."""

    async def on_shutdown(self) -> None:
        """Close connections. Override in subclasses."""

    def _setup_middleware(self):
        """Set up middleware."""

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=False,
            allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization", "X-API-Key", "X-Request-ID"],
        )

        @self.app.middleware("http")
        async def add_request_context(request: Request, call_next):
            request_id = set_request_id(request.headers.get("X-Request-ID"))
            start_time = time.time()
            try:
                response = await call_next(request)
                duration = time.time() - start_time

                route = request.scope.get("route")
                endpoint = getattr(route, "path", request.url.path)
                self.metrics.record_http_request(
                    method=request.method,
                    endpoint=endpoint,
                    status_code=response.status_code,
                    duration=duration,
                )
                self.logger.info(
                    "HTTP request",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=round(duration * 1000, 2),
                )
                response.headers["X-Request-ID"] = request_id
                return response
            finally:
                clear_context()

    def _setup_routes(self):
        """Set up common routes."""

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint."""
            dependencies = await self._check_dependencies()
            healthy = all(value == "ok" for value in dependencies.values())
            self.metrics.record_health_check("ok" if healthy else "error")
            return JSONResponse(
                status_code=200 if healthy else 503,
                content={
                    "service": self.service_name,
                    "status": "ok" if healthy else "degraded",
                    "uptime_seconds": self._get_uptime(),
                    "dependencies": dependencies,
                    "version": "1.0.0",
                    "commit": os.getenv("GIT_COMMIT", "unknown"),
                },
            )

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(
                content=generate_latest(self.metrics.registry),
                media_type=CONTENT_TYPE_LATEST,
            )

        @self.app.exception_handler(AccessLayerException)
        async def access_layer_exception_handler(request: Request, exc: AccessLayerException):
            """Handle AccessLayerException."""
            log = self.logger.error if exc.status_code >= 500 else self.logger.info
            log(
                "Request rejected",
                code=exc.code,
                message=exc.message,
                details=exc.details,
                path=request.url.path,
                **exc.log_context,
            )
            self.metrics.record_error(exc.code)
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_response().model_dump(),
            )

        @self.app.exception_handler(RequestValidationError)
        async def request_validation_handler(request: Request, exc: RequestValidationError):
            """Map FastAPI validation failures to the error envelope."""
            errors = jsonable_encoder(exc.errors())
            first = errors[0] if errors else {}
            field = ".".join(str(part) for part in first.get("loc", [])[1:]) or "request"
            return JSONResponse(
                status_code=400,
                content=error_payload(
                    "VALIDATION_ERROR",
                    f"Invalid value for '{field}': {first.get('msg', 'invalid')}",
                    {"errors": errors},
                ),
            )

        @self.app.exception_handler(StarletteHTTPException)
        async def http_exception_handler(request: Request, exc: StarletteHTTPException):
            """Map framework HTTP errors (unknown route, wrong method) to the envelope."""
            return JSONResponse(
                status_code=exc.status_code,
                content=error_payload(_HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR"), str(exc.detail)),
                headers=getattr(exc, "headers", None),
            )

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            """Handle general exceptions."""
            self.logger.error("Unhandled exception", error=str(exc), path=request.url.path, exc_info=True)
            self.metrics.record_error("INTERNAL_ERROR")
            return JSONResponse(
                status_code=500,
                content=error_payload("INTERNAL_ERROR", "Internal server error"),
            )

    async def _check_dependencies(self) -> Dict[str, str]:
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
            log_level=self.config.log_level.lower(),
        )
