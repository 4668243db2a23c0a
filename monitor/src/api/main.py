"""
FastAPI application factory for the solar monitor API.

``create_app`` wires the metrics cache, the poll status tracker and the
routers. The application lifespan builds the telemetry source for the
configured mode, starts the polling orchestrator as a background task and,
on shutdown, signals it and waits for it to close the source.

Run with ``uvicorn --factory monitor.src.api.main:create_app`` or through
``monitor.src.main.main``.

CHANGELOG:
- 2026-10-10: Return request validation errors in the response envelope
- 2026-10-09: Register plants, metrics and health routers (STORY-013)
- 2026-10-09: Initial creation (STORY-013)
"""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from monitor.src.api.health import router as health_router
from monitor.src.api.metrics import router as metrics_router
from monitor.src.api.plants import router as plants_router
from monitor.src.api.responses import ApiResponse
from monitor.src.cache import MetricsCache
from monitor.src.config import MonitorSettings
from monitor.src.health import PollStatus
from monitor.src.orchestrator import PollingOrchestrator, create_source
from monitor.src.sources.base import TelemetrySource

logger = logging.getLogger(__name__)


def create_app(
    settings: MonitorSettings | None = None,
    *,
    source: TelemetrySource | None = None,
    cache: MetricsCache | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Monitor settings; loaded from the environment if omitted.
        source: Telemetry source to poll; built from *settings* if omitted.
        cache: Metrics cache shared by the poller and the routes; a fresh one
            is created if omitted.

    Returns:
        FastAPI: The configured application. Polling starts with the
        application lifespan, not here.
    """
    settings = settings or MonitorSettings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan: start the poller, stop it on shutdown."""
        telemetry = source or create_source(settings)
        orchestrator = PollingOrchestrator(
            telemetry,
            app.state.cache,
            settings.effective_polling_interval_s(),
            app.state.poll_status,
        )
        shutdown_event = asyncio.Event()
        task = asyncio.create_task(
            orchestrator.run(shutdown_event), name="polling-orchestrator"
        )
        app.state.orchestrator = orchestrator

        logger.info("Solar monitor API ready (source_mode=%s)", settings.source_mode)
        yield
        logger.info("Solar monitor API shutting down")
        shutdown_event.set()
        await task

    app = FastAPI(
        title="Solar Monitor API",
        description="Real-time and historical solar plant telemetry.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.cache = cache or MetricsCache()
    app.state.poll_status = PollStatus(settings.health_path)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(plants_router)
    app.include_router(metrics_router)

    @app.exception_handler(RequestValidationError)
    async def validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Report malformed path or query parameters as a 400 envelope."""
        message = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'][1:])}: {err['msg']}"
            for err in exc.errors()
        )
        body = ApiResponse(success=False, error=f"Invalid request: {message}")
        return JSONResponse(status_code=400, content=body.model_dump(mode="json"))

    @app.get("/")
    async def root() -> dict:
        """Root liveness endpoint.

        Returns:
            dict: JSON object with application status.
        """
        return {"status": "ok"}

    return app
