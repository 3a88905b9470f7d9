"""
Collector Server - FastAPI Application

Runs the agent-facing TCP collector next to the HTTP API.

Usage:
    python3 -m server.main
"""

import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from server.config import Settings, settings
from server.db import MetricsStore
from server.routers import collectors
from server.services import CollectorServer, CommandStore


def configure_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging."""
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level.upper())

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    config: Settings = app.state.settings

    # Startup
    logger.info("Starting Collector Server", version="1.0.0")

    await app.state.store.init()

    app.state.collector_server = CollectorServer(
        host=config.collector_host,
        port=config.collector_port,
        store=app.state.store,
        commands=app.state.commands,
        max_payload_size=config.max_payload_size,
    )
    await app.state.collector_server.start()

    yield

    # Shutdown
    logger.info("Shutting down Collector Server")
    await app.state.collector_server.stop()


def create_app(config: Optional[Settings] = None) -> FastAPI:
    """Build the API application with its own store and command map."""
    config = config or settings

    app = FastAPI(
        title="Collector Server API",
        description="Fleet telemetry collector",
        version="1.0.0",
        docs_url="/api/docs" if config.api_debug else None,
        redoc_url="/api/redoc" if config.api_debug else None,
        lifespan=lifespan,
    )

    app.state.settings = config
    app.state.store = MetricsStore(config.database_path)
    app.state.commands = CommandStore()

    # Request logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all incoming requests."""
        start_time = datetime.utcnow()

        response = await call_next(request)

        duration_ms = (datetime.utcnow() - start_time).total_seconds() * 1000

        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round(duration_ms, 2),
            client=request.client.host if request.client else "unknown",
        )

        return response

    # Exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle uncaught exceptions."""
        logger.exception("Unhandled exception", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"}
        )

    app.include_router(collectors.router, prefix="/api", tags=["Collectors"])

    # Health check endpoint
    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        collector_server = getattr(app.state, "collector_server", None)
        return {
            "status": "healthy",
            "timestamp": datetime.utcnow().isoformat(),
            "version": "1.0.0",
            "collector_running": bool(collector_server and collector_server.is_running),
            "pending_commands": len(app.state.commands),
        }

    return app


app = create_app()


def run():
    import uvicorn

    configure_logging(settings.log_level)
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
    )


if __name__ == "__main__":
    run()
