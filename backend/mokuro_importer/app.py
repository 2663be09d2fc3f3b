"""Application entry point for the mokuro importer."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from mokuro_importer.core.config import get_settings
from mokuro_importer.core.database import (
    create_database_engine,
    create_session_factory,
    init_database,
)
from mokuro_importer.core.logging import setup_logging
from mokuro_importer.core.metrics import setup_metrics
from mokuro_importer.core.middleware import TracingMiddleware
from mokuro_importer.core.routes import create_app_router

logger = structlog.get_logger("mokuro_importer.app")

APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(
        "Starting mokuro importer",
        version=APP_VERSION,
        env=settings.env,
        host=settings.host_bind_address,
        port=settings.host_port,
    )

    await init_database(app.state.engine)
    logger.info("Database schema ready", database_file=str(settings.database_file))

    yield

    logger.info("Shutting down mokuro importer")
    if getattr(app.state, "engine", None) is not None:
        await app.state.engine.dispose()
        logger.info("Database engine disposed")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    setup_logging(
        debug=settings.is_debug,
        logs_dir=settings.logs_dir,
        log_level=settings.log_level,
    )

    app = FastAPI(
        title="Mokuro Importer",
        description="Imports mokuro-processed manga volumes into a local catalogue",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    engine = create_database_engine(settings.database_file, echo=settings.is_debug)
    async_session_factory = create_session_factory(engine)

    app.state.engine = engine
    app.state.async_session_factory = async_session_factory
    logger.info("Database engine and session factory created")

    async def get_db_session() -> AsyncIterator[SQLModelAsyncSession]:
        """FastAPI dependency for database sessions."""
        async with async_session_factory() as session:
            yield session

    app.add_middleware(TracingMiddleware)

    setup_metrics(app, APP_VERSION)

    app.include_router(create_app_router(get_db_session))

    return app


def main() -> None:
    """Main entry point."""
    from mokuro_importer.core.config import reload_settings

    current_settings = reload_settings()
    app = create_app()

    import uvicorn

    logger.info(
        "Starting uvicorn server",
        host=current_settings.host_bind_address,
        port=current_settings.host_port,
    )
    uvicorn.run(
        app,
        host=current_settings.host_bind_address,
        port=current_settings.host_port,
        log_config=None,  # We use structlog
    )


if __name__ == "__main__":
    main()
