"""FastAPI application factory for crossdeploy."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from crossdeploy import __version__
from crossdeploy.api.deps import init_definition_store, reset_definition_store
from crossdeploy.api.middleware import RequestBodyLimitMiddleware, RequestTimingMiddleware
from crossdeploy.api.routers import definitions, formats, reference, validation
from crossdeploy.api.schemas import HealthResponse
from crossdeploy.service.definition_store import DefinitionStore
from crossdeploy.settings import Settings

logger = logging.getLogger("crossdeploy.api")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Create the DefinitionStore for the lifetime of the application."""
    settings: Settings = app.state.settings
    init_definition_store(DefinitionStore(account_id=settings.default_account_id))
    logger.info("Definition store ready (source account %s)", settings.default_account_id)
    try:
        yield
    finally:
        reset_definition_store()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="crossdeploy",
        description=(
            "Compiles cross-account CI/CD pipeline definitions into CloudFormation templates."
        ),
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Middleware
    app.add_middleware(RequestBodyLimitMiddleware)
    app.add_middleware(RequestTimingMiddleware)

    app.include_router(definitions.router, prefix="/definitions", tags=["definitions"])
    app.include_router(validation.router, prefix="/validate", tags=["validation"])
    app.include_router(formats.router, prefix="/formats", tags=["formats"])
    app.include_router(reference.router, prefix="/reference", tags=["reference"])

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", version=__version__)

    return app


def main() -> None:
    """Run the REST API server using settings from environment / .env file."""
    settings = Settings()

    logging.basicConfig(level=settings.log_level.upper())
    logger.info(
        "crossdeploy API Server v%s starting (host=%s, port=%d)",
        __version__, settings.api_server_host, settings.effective_port,
    )

    uvicorn.run(
        "crossdeploy.api.app:create_app",
        factory=True,
        host=settings.api_server_host,
        port=settings.effective_port,
        log_level=settings.log_level.lower(),
    )
