"""SQLite persistence for processed volumes."""

from __future__ import annotations

from collections.abc import Sequence

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from mokuro_importer.core.database import retry_db_operation
from mokuro_importer.core.importing.errors import VolumeAlreadyExistsError
from mokuro_importer.core.importing.models import ProcessedVolume
from mokuro_importer.core.utils import natural_sorted
from mokuro_importer.db.models import Volume, VolumeFile, VolumeOcr

logger = structlog.get_logger("mokuro_importer.volume_store")


def build_volume_rows(
    processed: ProcessedVolume,
) -> tuple[Volume, VolumeOcr, list[VolumeFile]]:
    """Map a processed volume onto its three table rows."""
    meta = processed.metadata
    volume = Volume(
        id=meta.volume_id,
        series_id=meta.series_id,
        series_name=meta.series_name,
        volume_name=meta.volume_name,
        metadata_version=meta.metadata_version,
        page_count=meta.page_count,
        total_chars=meta.total_chars,
        page_char_counts=list(meta.page_char_counts),
        source_type=meta.source_type,
        thumbnail=meta.thumbnail.data if meta.thumbnail else None,
        thumbnail_width=meta.thumbnail.width if meta.thumbnail else None,
        thumbnail_height=meta.thumbnail.height if meta.thumbnail else None,
        mismatch_warning=meta.mismatch_warning,
        missing_pages=meta.missing_pages,
        missing_page_paths=meta.missing_page_paths,
    )
    ocr = VolumeOcr(
        volume_id=meta.volume_id,
        pages=[page.to_storage() for page in processed.ocr_pages],
    )
    files = [
        VolumeFile(
            volume_id=meta.volume_id,
            path=path,
            position=position,
            data=processed.files[path],
        )
        for position, path in enumerate(natural_sorted(list(processed.files)))
    ]
    return volume, ocr, files


async def volume_exists(session: SQLModelAsyncSession, volume_id: str) -> bool:
    return await session.get(Volume, volume_id) is not None


async def save_volume(session: SQLModelAsyncSession, processed: ProcessedVolume) -> Volume:
    """Persist a processed volume in one transaction.

    Args:
        session: Database session
        processed: Volume to persist

    Returns:
        The stored Volume row

    Raises:
        VolumeAlreadyExistsError: A volume with the same id is already stored
    """
    meta = processed.metadata
    if await volume_exists(session, meta.volume_id):
        raise VolumeAlreadyExistsError(meta.volume_id, meta.volume_name)

    volume, ocr, files = build_volume_rows(processed)

    async def write() -> None:
        session.add(volume)
        session.add(ocr)
        session.add_all(files)
        await session.commit()

    try:
        await retry_db_operation(write, session=session, operation_type="save_volume")
    except IntegrityError as e:
        await session.rollback()
        raise VolumeAlreadyExistsError(meta.volume_id, meta.volume_name) from e

    logger.info(
        "Volume saved",
        volume_id=volume.id,
        series=volume.series_name,
        volume=volume.volume_name,
        files=len(files),
    )
    return volume


async def get_volume(session: SQLModelAsyncSession, volume_id: str) -> Volume | None:
    return await session.get(Volume, volume_id)


async def list_volumes(session: SQLModelAsyncSession) -> Sequence[Volume]:
    """All stored volumes ordered by series, then volume name."""
    result = await session.exec(select(Volume).order_by(Volume.series_name, Volume.volume_name))
    return result.all()


async def get_volume_pages(session: SQLModelAsyncSession, volume_id: str) -> list[dict]:
    ocr = await session.get(VolumeOcr, volume_id)
    return list(ocr.pages) if ocr else []


async def delete_volume(session: SQLModelAsyncSession, volume_id: str) -> bool:
    """Delete a volume with its OCR pages and files.

    Returns:
        False when no such volume exists
    """
    if not await volume_exists(session, volume_id):
        return False

    async def remove() -> None:
        files_result = await session.exec(
            select(VolumeFile).where(VolumeFile.volume_id == volume_id)
        )
        for row in files_result.all():
            await session.delete(row)
        ocr = await session.get(VolumeOcr, volume_id)
        if ocr is not None:
            await session.delete(ocr)
        volume = await session.get(Volume, volume_id)
        if volume is not None:
            await session.delete(volume)
        await session.commit()

    await retry_db_operation(remove, session=session, operation_type="delete_volume")
    logger.info("Volume deleted", volume_id=volume_id)
    return True


class VolumeStore:
    """Persistence collaborator of the import service.

    Every call opens its own session, so concurrent imports never share one.
    """

    def __init__(self, session_factory: async_sessionmaker[SQLModelAsyncSession]) -> None:
        self.session_factory = session_factory

    async def exists(self, volume_id: str) -> bool:
        async with self.session_factory() as session:
            return await volume_exists(session, volume_id)

    async def save(self, processed: ProcessedVolume) -> Volume:
        async with self.session_factory() as session:
            return await save_volume(session, processed)

    async def delete(self, volume_id: str) -> bool:
        async with self.session_factory() as session:
            return await delete_volume(session, volume_id)

    async def get(self, volume_id: str) -> Volume | None:
        async with self.session_factory() as session:
            return await get_volume(session, volume_id)

    async def list_volumes(self) -> Sequence[Volume]:
        async with self.session_factory() as session:
            return await list_volumes(session)
