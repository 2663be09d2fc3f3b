"""Import routes."""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog
from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel, Field

from mokuro_importer.core.importing.local import LocalFolderProvider
from mokuro_importer.core.importing.models import BatchImportResult
from mokuro_importer.core.importing.service import ImportService
from mokuro_importer.core.volume_store import VolumeStore

logger = structlog.get_logger("mokuro_importer.routes.imports")


class FolderImportRequest(BaseModel):
    """Request model for importing a folder on the server."""

    folder_path: str = Field(..., description="Absolute path of the folder to import")


def create_imports_router() -> APIRouter:
    """Create imports router.

    Each import opens its own sessions from app.state.async_session_factory.

    Returns:
        Configured APIRouter instance
    """
    router = APIRouter(prefix="/api", tags=["imports"])

    @router.post("/imports", response_model=BatchImportResult)
    async def import_folder(
        request: Request,
        payload: FolderImportRequest,
    ) -> BatchImportResult:
        """Import every volume found below a server-side folder.

        The whole batch runs within the request. Per-volume failures are
        reported in the result rather than as an HTTP error.
        """
        folder = Path(payload.folder_path).expanduser()
        if not folder.is_dir():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Folder not found: {payload.folder_path}",
            )

        entries = await asyncio.to_thread(LocalFolderProvider().collect_entries, folder)
        service = ImportService(VolumeStore(request.app.state.async_session_factory))
        result = await service.import_entries(entries, source_type="local")

        logger.info(
            "Folder import completed",
            folder=str(folder),
            imported=result.imported_count,
            failed=result.failed_count,
        )
        return result

    return router
