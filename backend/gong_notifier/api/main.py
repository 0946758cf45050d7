"""
Gong Notifier - FastAPI Application
===================================

Application factory: plugin request router, lifespan wiring of the
notifier core, health check.
"""

from contextlib import asynccontextmanager
from functools import partial
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from gong_notifier.api import plugin
from gong_notifier.core.config import Settings, settings
from gong_notifier.core.log_config import configure_logging
from gong_notifier.core.schemas import HealthResponse, PluginResponse, PluginSettings
from gong_notifier.core.notifier import SettingsGate, StageStatusDispatcher, build_components
from gong_notifier.core.notifier.settings_source import (
    HostSettingsSource,
    SettingsSource,
    StaticSettingsSource,
)

configure_logging(settings)

logger = structlog.get_logger()


def create_settings_source(app_settings: Settings) -> SettingsSource:
    """Host endpoint when configured, plugin defaults otherwise."""
    if app_settings.HOST_SETTINGS_URL:
        return HostSettingsSource(
            app_settings.HOST_SETTINGS_URL,
            app_settings.PLUGIN_ID,
            timeout=app_settings.HOST_TIMEOUT_SECONDS,
        )
    return StaticSettingsSource(PluginSettings(server_url=app_settings.DEFAULT_SERVER_URL))


# ==========================================================================
# Lifespan
# ==========================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan handler.

    Startup:
    - Build the settings gate and the dispatcher

    Shutdown:
    - Close the CI server and host HTTP clients
    """
    logger.info("Starting Gong Notifier", version=settings.APP_VERSION)

    gate = SettingsGate(
        create_settings_source(settings),
        partial(build_components, app_settings=settings),
    )
    app.state.dispatcher = StageStatusDispatcher(gate)

    yield

    logger.info("Shutting down Gong Notifier")
    await gate.aclose()


# ==========================================================================
# App Factory
# ==========================================================================

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="GoCD stage notifications with fixed/broken detection",
        docs_url="/docs" if settings.is_development else None,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.is_development else None,
        lifespan=lifespan,
    )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Answer uncaught exceptions with the host failure envelope."""
        logger.error(
            "Unhandled exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
        )

        detail = str(exc) if settings.is_development else "An unexpected error occurred"
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=PluginResponse(status="failure", messages=[detail]).model_dump(),
        )

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["Health"],
        summary="Health check",
    )
    async def health_check() -> HealthResponse:
        return HealthResponse(
            status="healthy",
            version=settings.APP_VERSION,
            environment=settings.ENVIRONMENT,
        )

    app.include_router(plugin.router, prefix=settings.API_V1_PREFIX)

    return app


# ==========================================================================
# Application Instance
# ==========================================================================

app = create_app()


# ==========================================================================
# Development Server
# ==========================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "gong_notifier.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_level="info",
    )
