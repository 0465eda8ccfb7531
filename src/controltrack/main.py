# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""ControlTrack - Main Application Module."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from beartype import beartype
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import Field

from . import __version__
from .api.v1 import router as v1_router
from .core.config import get_settings
from .core.logging_utils import configure_logging
from .models.base import BaseModelConfig
from .workflow.service import ComplianceWorkflow

logger = logging.getLogger(__name__)


class APIInfo(BaseModelConfig):
    """Service identification returned from the root endpoint."""

    name: str = Field(..., min_length=1)
    version: str = Field(..., min_length=1)
    status: str = Field(..., min_length=1)
    environment: str = Field(..., min_length=1)
    audit_events: int = Field(..., ge=0)


@beartype
def create_app(workflow: ComplianceWorkflow | None = None, *, run_sweeper: bool = True) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        workflow: Workflow instance to serve; a default in-process one is built if omitted
        run_sweeper: Run the due-date sweep in the background while the app is up

    Returns:
        FastAPI: Configured application instance
    """
    settings = get_settings()
    configure_logging(level=settings.log_level)
    workflow = workflow or ComplianceWorkflow(settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Starting ControlTrack in %s mode", settings.api_env)
        if run_sweeper:
            await workflow.sweeper.start()
        yield
        logger.info("Shutting down ControlTrack")
        await workflow.sweeper.stop()
        await workflow.drain_side_effects()

    app = FastAPI(
        title=settings.app_name,
        description="IT control testing workflow engine",
        version=__version__,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        openapi_url="/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )
    app.state.workflow = workflow

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(v1_router)

    @app.get("/")
    async def root() -> APIInfo:
        """Root endpoint returning API information."""
        return APIInfo(
            name=settings.app_name,
            version=__version__,
            status="operational",
            environment=settings.api_env,
            audit_events=workflow.audit_log.size,
        )

    return app


# Create the application instance
app = create_app()


@beartype
def main() -> None:
    """Run the main application entry point."""
    settings = get_settings()

    uvicorn.run(
        "controltrack.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_level="info" if not settings.is_production else "error",
    )


if __name__ == "__main__":
    main()
