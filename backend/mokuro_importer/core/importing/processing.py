"""Turn one paired, materialized source into a persistable volume."""

from __future__ import annotations

import asyncio
import json
import time
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

import structlog
from pydantic import ValidationError

from mokuro_importer.core.config import DEFAULT_GENERIC_PARENT_FOLDERS, Settings
from mokuro_importer.core.importing.errors import (
    InvalidMetadataJsonError,
    MissingRequiredFieldsError,
)
from mokuro_importer.core.importing.images import (
    DEFAULT_PLACEHOLDER_HEIGHT,
    DEFAULT_PLACEHOLDER_WIDTH,
    Thumbnailer,
    create_placeholder_image,
)
from mokuro_importer.core.importing.matching import (
    DEFAULT_COUNT_FALLBACK_THRESHOLD,
    match_images_to_pages,
)
from mokuro_importer.core.importing.models import (
    ArchiveSource,
    DecompressedVolume,
    FileEntry,
    ImageMatchResult,
    MokuroPage,
    ParsedMetadata,
    PairedSource,
    ProcessedPage,
    ProcessedVolume,
    Thumbnail,
    VolumeMetadata,
)
from mokuro_importer.core.importing.naming import extract_volume_info
from mokuro_importer.core.importing.pairing import estimate_archive_size
from mokuro_importer.core.metrics import (
    nested_archives_total,
    placeholder_pages_total,
    thumbnail_failures_total,
    volume_processing_seconds,
)
from mokuro_importer.core.utils import deterministic_uuid, file_stem, natural_sorted

logger = structlog.get_logger("mokuro_importer.importing.processing")

REQUIRED_METADATA_FIELDS = ("version", "title", "title_uuid", "volume", "volume_uuid", "pages")


@dataclass
class ProcessingOptions:
    """Tunables of the volume processor."""

    count_fallback_threshold: float = DEFAULT_COUNT_FALLBACK_THRESHOLD
    placeholder_width: int = DEFAULT_PLACEHOLDER_WIDTH
    placeholder_height: int = DEFAULT_PLACEHOLDER_HEIGHT
    generic_parent_folders: list[str] = field(
        default_factory=lambda: list(DEFAULT_GENERIC_PARENT_FOLDERS)
    )

    @classmethod
    def from_settings(cls, settings: Settings) -> ProcessingOptions:
        return cls(
            count_fallback_threshold=settings.count_fallback_threshold,
            placeholder_width=settings.placeholder_width,
            placeholder_height=settings.placeholder_height,
            generic_parent_folders=list(settings.generic_parent_folders),
        )


def parse_metadata_file(entry: FileEntry) -> ParsedMetadata:
    """Parse a sidecar file.

    Args:
        entry: The .mokuro file

    Returns:
        ParsedMetadata

    Raises:
        InvalidMetadataJsonError: Content is not a JSON object or has values
            of the wrong type
        MissingRequiredFieldsError: Required keys are absent; all of them are
            named, in declaration order
    """
    try:
        raw = json.loads(entry.read_bytes().decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidMetadataJsonError(entry.path) from e

    if not isinstance(raw, dict):
        raise InvalidMetadataJsonError(entry.path, "top level is not a JSON object")

    missing = [name for name in REQUIRED_METADATA_FIELDS if name not in raw]
    if missing:
        raise MissingRequiredFieldsError(entry.path, missing)

    try:
        return ParsedMetadata.model_validate(raw)
    except ValidationError as e:
        fields = sorted({".".join(str(part) for part in err["loc"]) for err in e.errors()})
        raise InvalidMetadataJsonError(
            entry.path, f"invalid values for {', '.join(fields)}"
        ) from e


def calculate_cumulative_chars(pages: Sequence[MokuroPage]) -> list[int]:
    """Running total of characters after each page."""
    counts: list[int] = []
    running = 0
    for page in pages:
        running += page.char_count
        counts.append(running)
    return counts


def nested_source_for_archive(archive: FileEntry) -> PairedSource:
    """Re-emit an archive found inside another source as a fresh pairing.

    The base path is the archive file name without its extension.
    """
    return PairedSource(
        metadata_file=None,
        source=ArchiveSource(archive=archive),
        base_path=file_stem(archive.path),
        estimated_size=estimate_archive_size(archive),
    )


def _read_files(image_files: dict[str, FileEntry]) -> dict[str, bytes]:
    return {path: image_files[path].read_bytes() for path in natural_sorted(list(image_files))}


def _build_placeholders(
    missing: Iterable[str],
    pages: Sequence[MokuroPage],
    options: ProcessingOptions,
) -> dict[str, bytes]:
    placeholders: dict[str, bytes] = {}
    for missing_path in missing:
        page = next((p for p in pages if p.img_path == missing_path), None)
        placeholders[missing_path] = create_placeholder_image(
            missing_path,
            (page.img_width if page else None) or options.placeholder_width,
            (page.img_height if page else None) or options.placeholder_height,
        )
    return placeholders


async def _generate_thumbnail(
    thumbnailer: Thumbnailer | None,
    pages: Sequence[ProcessedPage],
    files: dict[str, bytes],
    available: dict[str, FileEntry],
) -> Thumbnail | None:
    if thumbnailer is None:
        return None

    first_image = next((p.img_path for p in pages if p.img_path in available), None)
    if first_image is None:
        return None

    try:
        return await thumbnailer.generate(files[first_image])
    except Exception as e:
        thumbnail_failures_total.inc()
        logger.warning("Failed to generate thumbnail", image=first_image, error=str(e))
        return None


async def process_volume(
    volume: DecompressedVolume,
    thumbnailer: Thumbnailer | None = None,
    options: ProcessingOptions | None = None,
) -> ProcessedVolume:
    """Build a ProcessedVolume from one materialized source.

    With a sidecar file, names and identifiers come from it and its pages are
    matched against the available images; pages without an image get a
    placeholder. Without one, the volume is image-only: pages are the images
    in natural order and names are derived from the base path.

    Args:
        volume: Materialized source content
        thumbnailer: Optional thumbnail generator; failures are logged and
            the thumbnail omitted
        options: Processing tunables, defaults when omitted

    Returns:
        ProcessedVolume

    Raises:
        InvalidMetadataJsonError: The sidecar file is malformed
        MissingRequiredFieldsError: The sidecar file lacks required keys
    """
    options = options or ProcessingOptions()
    start_time = time.perf_counter()

    declared_pages: list[MokuroPage]
    if volume.metadata_file is not None:
        parsed = parse_metadata_file(volume.metadata_file)
        declared_pages = parsed.pages
        match = match_images_to_pages(
            [page.img_path for page in declared_pages],
            volume.image_files.keys(),
            options.count_fallback_threshold,
        )
        counts = calculate_cumulative_chars(declared_pages)
        pages = [
            ProcessedPage(
                page=page,
                img_path=match.resolve(page.img_path) or page.img_path,
                cumulative_chars=count,
            )
            for page, count in zip(declared_pages, counts, strict=True)
        ]
        metadata = VolumeMetadata(
            volume_id=parsed.volume_id,
            series_id=parsed.series_id,
            series_name=parsed.series_name or parsed.volume_name,
            volume_name=parsed.volume_name,
            metadata_version=parsed.version,
            page_count=len(pages),
            total_chars=parsed.total_chars or (counts[-1] if counts else 0),
            page_char_counts=counts,
            source_type=volume.source_type,
        )
    else:
        info = extract_volume_info(volume.base_path, options.generic_parent_folders)
        image_paths = natural_sorted(list(volume.image_files))
        declared_pages = [MokuroPage(img_path=path) for path in image_paths]
        match = ImageMatchResult(matched=list(image_paths))
        pages = [
            ProcessedPage(page=page, img_path=page.img_path, cumulative_chars=0)
            for page in declared_pages
        ]
        metadata = VolumeMetadata(
            volume_id=str(uuid.uuid4()),
            series_id=deterministic_uuid(info.series_name),
            series_name=info.series_name,
            volume_name=info.volume_name,
            metadata_version="",
            page_count=len(pages),
            total_chars=0,
            page_char_counts=[0] * len(pages),
            source_type=volume.source_type,
        )

    files = await asyncio.to_thread(_read_files, volume.image_files)

    if match.missing:
        placeholders = await asyncio.to_thread(
            _build_placeholders, match.missing, declared_pages, options
        )
        files.update(placeholders)
        placeholder_pages_total.inc(len(placeholders))
        metadata.mismatch_warning = f"Missing images: {', '.join(match.missing)}"
        metadata.missing_pages = len(match.missing)
        metadata.missing_page_paths = list(match.missing)
        logger.warning(
            "Volume has pages without images",
            volume_id=metadata.volume_id,
            missing_pages=len(match.missing),
            extra_files=len(match.extra),
        )

    metadata.thumbnail = await _generate_thumbnail(
        thumbnailer, pages, files, volume.image_files
    )

    nested_sources = [nested_source_for_archive(a) for a in volume.nested_archives]
    if nested_sources:
        nested_archives_total.inc(len(nested_sources))

    duration = time.perf_counter() - start_time
    volume_processing_seconds.observe(duration)
    logger.info(
        "Volume processed",
        volume_id=metadata.volume_id,
        series=metadata.series_name,
        volume=metadata.volume_name,
        pages=metadata.page_count,
        image_only=metadata.image_only,
        remapped_pages=len(match.remapped),
        nested_sources=len(nested_sources),
        duration_seconds=round(duration, 3),
    )

    return ProcessedVolume(
        metadata=metadata,
        ocr_pages=pages,
        files=files,
        nested_sources=nested_sources,
    )
