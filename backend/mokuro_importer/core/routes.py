"""Application routes."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable

import structlog
from fastapi import APIRouter
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from mokuro_importer.routes import general
from mokuro_importer.routes.imports import create_imports_router
from mokuro_importer.routes.volumes import create_volumes_router

logger = structlog.get_logger("mokuro_importer.routes")


def create_app_router(
    get_db_session: Callable[[], AsyncIterator[SQLModelAsyncSession]],
) -> APIRouter:
    """Create and configure main application router.

    Args:
        get_db_session: Dependency function for database sessions

    Returns:
        Configured APIRouter instance
    """
    router = APIRouter()

    router.include_router(general.router, tags=["general"])

    router.include_router(create_imports_router(), tags=["imports"])
    logger.debug("Included imports router in app_router")

    router.include_router(create_volumes_router(get_db_session), tags=["volumes"])
    logger.debug("Included volumes router in app_router")

    return router
