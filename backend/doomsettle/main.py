"""
Main FastAPI application entry point for the settlement engine.

This is the core application file that:
- Builds the settlement runtime in the lifespan (or takes one injected)
- Maps settlement errors to ``{"error", "code"}`` responses
- Configures CORS
- Sets up Logfire observability
- Provides the health check endpoint

The request path only validates and enqueues; settlement runs in workers.
"""

import logging
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from doomsettle import __version__
from doomsettle.api.routes import admin_router, disputes_router, events_router
from doomsettle.config import get_settings
from doomsettle.observability import initialize_logfire
from doomsettle.runtime import SettlementRuntime, build_runtime
from doomsettle.services.exceptions import SettlementError

logger = logging.getLogger(__name__)


def create_app(runtime: Optional[SettlementRuntime] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        runtime: Prebuilt runtime (tests). When omitted the lifespan builds
            one from settings and disposes it on shutdown.
    """
    settings = runtime.settings if runtime else get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = getattr(app.state, "runtime", None) is None
        if owned:
            app.state.runtime = build_runtime(settings)

        initialize_logfire(settings, app=app, engine=app.state.runtime.database.engine)
        logger.info(f"Starting settlement API ({settings.environment})")

        if not await app.state.runtime.database.check_connection():
            logger.error("Database connection failed on startup")

        yield

        logger.info("Shutting down settlement API")
        if owned:
            await app.state.runtime.close()

    app = FastAPI(
        title="DoomSettle API",
        description="DOOM/LIFE prediction settlement engine",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    if runtime is not None:
        app.state.runtime = runtime

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(SettlementError)
    async def settlement_error_handler(request: Request, exc: SettlementError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        else:
            logger.warning(f"{request.method} {request.url.path} rejected ({exc.code}): {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.message, "code": exc.code},
        )

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request) -> Dict[str, str]:
        """
        Health check endpoint for load balancers and monitoring.

        Returns:
            dict: Health status of the application and database
        """
        db_connected = await request.app.state.runtime.database.check_connection()
        return {
            "status": "healthy" if db_connected else "degraded",
            "service": "doomsettle-api",
            "version": __version__,
            "database": "connected" if db_connected else "disconnected",
            "environment": settings.environment,
        }

    app.include_router(events_router)
    app.include_router(disputes_router)
    app.include_router(admin_router)

    return app
