"""FastAPI server for the POS sync engine.

Main entry point for the API server.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import health, integrations
from core import __version__
from core.config import get_settings
from core.errors import ClientNotFound, SyncEngineError
from core.observability.logging import configure_logging, get_logger
from sync_engine.service import IntegrationService

logger = get_logger(__name__)


def create_app(engine: Optional[IntegrationService] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        engine: Engine to serve; built from environment settings at startup if None
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        if engine is None:
            settings = get_settings()
            configure_logging(level=settings.log_level, json_format=settings.json_logs)
            app.state.engine = IntegrationService.build(settings=settings)
        else:
            app.state.engine = engine

        await app.state.engine.start()
        logger.info("POS Sync API starting up...")

        yield

        logger.info("POS Sync API shutting down...")
        await app.state.engine.shutdown()

    app = FastAPI(
        title="POS Sync API",
        description="Synchronizes POS sales into the Odoo ERP with retries and per-client circuit breaking",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ClientNotFound)
    async def client_not_found_handler(request: Request, exc: ClientNotFound) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.message, "code": exc.code})

    @app.exception_handler(SyncEngineError)
    async def engine_error_handler(request: Request, exc: SyncEngineError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": exc.message, "code": exc.code})

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(integrations.router, prefix="/integrations", tags=["Integrations"])

    return app


# Default app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:app", host="0.0.0.0", port=8000, reload=True)
