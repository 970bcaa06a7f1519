"""FastAPI server for the plant operations engine.

Main entry point for the API server.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import health, deliveries, batches
from core import __version__
from core.config import get_settings
from core.observability.logging import configure_logging, get_logger
from storage.db import init_db


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings = get_settings()
    init_db(settings.db_path)
    logger.info("Plant operations API starting up", extra_fields={"db_path": str(settings.db_path)})

    yield

    logger.info("Plant operations API shutting down")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Plant Operations API",
        description="Delivery note lifecycle and production batch reconciliation",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, tags=["Health"])
    app.include_router(deliveries.router, prefix="/deliveries", tags=["Deliveries"])
    app.include_router(batches.router, prefix="/batches", tags=["Batches"])

    return app


# Default app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.json_logs, force=True)
    uvicorn.run("api.server:app", host="0.0.0.0", port=8000, reload=True)
