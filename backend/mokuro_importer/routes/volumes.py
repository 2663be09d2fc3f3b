"""Volume catalogue routes."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from mokuro_importer.core import volume_store
from mokuro_importer.db.models import Volume

logger = structlog.get_logger("mokuro_importer.routes.volumes")


class VolumeResponse(BaseModel):
    """Volume response model."""

    id: str
    series_id: str
    series_name: str
    volume_name: str
    metadata_version: str
    image_only: bool
    page_count: int
    total_chars: int
    source_type: str
    has_thumbnail: bool
    thumbnail_width: int | None
    thumbnail_height: int | None
    mismatch_warning: str | None
    missing_pages: int | None
    missing_page_paths: list[str] | None
    created_at: int


class VolumeDetailResponse(VolumeResponse):
    """Volume with its per-page character counts and OCR pages."""

    page_char_counts: list[int] = Field(default_factory=list)
    pages: list[dict[str, Any]] = Field(default_factory=list)


class VolumeListResponse(BaseModel):
    """Response model for listing volumes."""

    volumes: list[VolumeResponse]


def _to_response(volume: Volume) -> dict[str, Any]:
    return {
        "id": volume.id,
        "series_id": volume.series_id,
        "series_name": volume.series_name,
        "volume_name": volume.volume_name,
        "metadata_version": volume.metadata_version,
        "image_only": volume.metadata_version == "",
        "page_count": volume.page_count,
        "total_chars": volume.total_chars,
        "source_type": volume.source_type,
        "has_thumbnail": volume.thumbnail is not None,
        "thumbnail_width": volume.thumbnail_width,
        "thumbnail_height": volume.thumbnail_height,
        "mismatch_warning": volume.mismatch_warning,
        "missing_pages": volume.missing_pages,
        "missing_page_paths": volume.missing_page_paths,
        "created_at": volume.created_at,
    }


def create_volumes_router(
    get_db_session: Callable[[], AsyncIterator[SQLModelAsyncSession]],
) -> APIRouter:
    """Create volumes router.

    Args:
        get_db_session: Dependency function for database sessions

    Returns:
        Configured APIRouter instance
    """
    router = APIRouter(prefix="/api", tags=["volumes"])

    async def _get_or_404(session: SQLModelAsyncSession, volume_id: str) -> Volume:
        volume = await volume_store.get_volume(session, volume_id)
        if volume is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Volume {volume_id} not found",
            )
        return volume

    @router.get("/volumes", response_model=VolumeListResponse)
    async def list_volumes(
        session: SQLModelAsyncSession = Depends(get_db_session),
    ) -> VolumeListResponse:
        """List all imported volumes."""
        volumes = await volume_store.list_volumes(session)
        return VolumeListResponse(
            volumes=[VolumeResponse(**_to_response(volume)) for volume in volumes]
        )

    @router.get("/volumes/{volume_id}", response_model=VolumeDetailResponse)
    async def get_volume(
        volume_id: str,
        session: SQLModelAsyncSession = Depends(get_db_session),
    ) -> VolumeDetailResponse:
        """Get one volume with its OCR pages."""
        volume = await _get_or_404(session, volume_id)
        pages = await volume_store.get_volume_pages(session, volume_id)
        return VolumeDetailResponse(
            **_to_response(volume),
            page_char_counts=list(volume.page_char_counts or []),
            pages=pages,
        )

    @router.get("/volumes/{volume_id}/thumbnail")
    async def get_thumbnail(
        volume_id: str,
        session: SQLModelAsyncSession = Depends(get_db_session),
    ) -> Response:
        """Get the cover thumbnail of a volume as JPEG."""
        volume = await _get_or_404(session, volume_id)
        if volume.thumbnail is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Volume {volume_id} has no thumbnail",
            )
        return Response(content=volume.thumbnail, media_type="image/jpeg")

    @router.delete("/volumes/{volume_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_volume(
        volume_id: str,
        session: SQLModelAsyncSession = Depends(get_db_session),
    ) -> None:
        """Delete a volume with its OCR pages and files."""
        deleted = await volume_store.delete_volume(session, volume_id)
        if not deleted:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Volume {volume_id} not found",
            )
        logger.info("Volume deleted via API", volume_id=volume_id)

    return router
