"""Batch import orchestration.

One call to ImportService.import_entries() takes every file of one import
(a dropped folder, a picked set of files, a server-side folder walk) and runs:

    pairing -> routing -> materialization -> processing -> persistence

Each pairing is an isolated item: its errors are recorded in the batch result
and never stop sibling items. Archives found inside other archives are
imported after their parent, depth-first.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

import structlog

from mokuro_importer.core.config import Settings, get_settings
from mokuro_importer.core.importing.archives import Decompressor, ZipDecompressor
from mokuro_importer.core.importing.classifier import classify_path
from mokuro_importer.core.importing.errors import (
    ArchiveContentError,
    VolumeAlreadyExistsError,
    VolumeImportError,
)
from mokuro_importer.core.importing.images import PillowThumbnailer, Thumbnailer
from mokuro_importer.core.importing.models import (
    ArchiveSource,
    BatchImportResult,
    DecompressedVolume,
    DirectorySource,
    FileCategory,
    FileEntry,
    PairedSource,
    SourceType,
    TocDirectorySource,
)
from mokuro_importer.core.importing.naming import display_title
from mokuro_importer.core.importing.pairing import pair_sources
from mokuro_importer.core.importing.processing import (
    ProcessingOptions,
    nested_source_for_archive,
    process_volume,
)
from mokuro_importer.core.importing.routing import decide_import_routing
from mokuro_importer.core.metrics import (
    orphaned_metadata_total,
    volumes_failed_total,
    volumes_imported_total,
    volumes_skipped_total,
)
from mokuro_importer.core.tracing import trace_context
from mokuro_importer.core.utils import join_path, split_path

logger = structlog.get_logger("mokuro_importer.importing.service")

EMPTY_ARCHIVE_MESSAGE = "No importable volumes found in archive"


class VolumeSink(Protocol):
    """Persistence collaborator."""

    async def exists(self, volume_id: str) -> bool: ...

    async def save(self, processed: Any) -> Any: ...


@dataclass
class _ItemOutcome:
    """What one top-level pairing (and everything nested in it) produced."""

    volume_ids: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    skipped: int = 0


@dataclass
class _Materialized:
    """Content of one pairing, ready for the processor."""

    volumes: list[DecompressedVolume] = field(default_factory=list)
    nested: list[PairedSource] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class ImportService:
    """Imports batches of files into the volume store."""

    def __init__(
        self,
        store: VolumeSink,
        decompressor: Decompressor | None = None,
        thumbnailer: Thumbnailer | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store
        self.decompressor = decompressor or ZipDecompressor()
        self.thumbnailer = thumbnailer or PillowThumbnailer(
            (self.settings.thumbnail_max_width, self.settings.thumbnail_max_height)
        )
        self.options = ProcessingOptions.from_settings(self.settings)

    async def import_entries(
        self,
        entries: Iterable[FileEntry],
        source_type: SourceType = "local",
    ) -> BatchImportResult:
        """Import every volume that can be assembled from ``entries``.

        Args:
            entries: All files of one import
            source_type: Where the files came from, stored on each volume

        Returns:
            BatchImportResult. Per-item failures are reported in ``errors``
            and never raised.
        """
        with trace_context(import_id=uuid.uuid4().hex):
            entries = list(entries)
            result = BatchImportResult()

            pairing_result = pair_sources(entries)
            for warning in pairing_result.warnings:
                orphaned_metadata_total.inc()
                logger.warning("Orphaned metadata file", warning=warning)
            result.warnings.extend(pairing_result.warnings)

            importable = []
            for pairing in pairing_result.pairings:
                if pairing.image_only and not self.settings.import_image_only:
                    volumes_skipped_total.inc()
                    result.skipped_count += 1
                    result.warnings.append(
                        f"Skipped folder without mokuro file: {pairing.base_path}"
                    )
                    continue
                importable.append(pairing)

            logger.info(
                "Import started",
                files=len(entries),
                pairings=len(importable),
                skipped=result.skipped_count,
            )

            decision = decide_import_routing(importable)
            if decision.direct_process is not None:
                outcomes = [await self._import_item(decision.direct_process, source_type)]
            else:
                outcomes = await self._run_queue(decision.queued, source_type)

            for outcome in outcomes:
                result.volume_ids.extend(outcome.volume_ids)
                result.imported_count += len(outcome.volume_ids)
                result.failed_count += len(outcome.errors)
                result.skipped_count += outcome.skipped
                result.errors.extend(outcome.errors)
                result.warnings.extend(outcome.warnings)

            result.success = result.failed_count == 0
            logger.info(
                "Import finished",
                imported=result.imported_count,
                failed=result.failed_count,
                skipped=result.skipped_count,
                warnings=len(result.warnings),
            )
            return result

    async def _run_queue(
        self,
        queued: list[PairedSource],
        source_type: SourceType,
    ) -> list[_ItemOutcome]:
        """Process queued pairings with bounded concurrency, keeping their order."""
        if not queued:
            return []

        semaphore = asyncio.Semaphore(max(1, self.settings.import_concurrency))

        async def run(pairing: PairedSource) -> _ItemOutcome:
            async with semaphore:
                return await self._import_item(pairing, source_type)

        return list(await asyncio.gather(*(run(pairing) for pairing in queued)))

    async def _import_item(self, pairing: PairedSource, source_type: SourceType) -> _ItemOutcome:
        outcome = _ItemOutcome()
        await self._import_pairing(pairing, source_type, depth=0, outcome=outcome)
        return outcome

    async def _import_pairing(
        self,
        pairing: PairedSource,
        source_type: SourceType,
        depth: int,
        outcome: _ItemOutcome,
    ) -> None:
        log = logger.bind(
            pairing_id=pairing.id,
            base_path=pairing.base_path,
            title=display_title(pairing.base_path),
            kind=pairing.kind,
        )

        try:
            materialized = await self._materialize(pairing, source_type)
        except VolumeImportError as e:
            self._record_failure(outcome, pairing, e, e.reason)
            return
        except Exception as e:
            log.exception("Unexpected error while reading source")
            self._record_failure(outcome, pairing, e, "unexpected")
            return

        outcome.warnings.extend(materialized.warnings)
        nested = list(materialized.nested)

        for volume in materialized.volumes:
            try:
                processed = await process_volume(volume, self.thumbnailer, self.options)
                await self.store.save(processed)
            except VolumeAlreadyExistsError as e:
                # nested archives were imported along with the stored volume
                self._record_failure(outcome, pairing, e, e.reason)
                continue
            except VolumeImportError as e:
                nested.extend(nested_source_for_archive(a) for a in volume.nested_archives)
                self._record_failure(outcome, pairing, e, e.reason)
                continue
            except Exception as e:
                nested.extend(nested_source_for_archive(a) for a in volume.nested_archives)
                log.exception("Unexpected error while importing volume")
                self._record_failure(outcome, pairing, e, "unexpected")
                continue

            kind = "image_only" if processed.metadata.image_only else "mokuro"
            volumes_imported_total.labels(kind=kind).inc()
            outcome.volume_ids.append(processed.metadata.volume_id)
            if processed.metadata.mismatch_warning:
                outcome.warnings.append(
                    f"{processed.metadata.volume_name}: {processed.metadata.mismatch_warning}"
                )
            log.info("Volume imported", volume_id=processed.metadata.volume_id, depth=depth)
            nested.extend(processed.nested_sources)

        for source in nested:
            if depth + 1 > self.settings.max_nesting_depth:
                volumes_skipped_total.inc()
                outcome.skipped += 1
                outcome.warnings.append(
                    f"Skipped nested archive {source.base_path}: nested more than "
                    f"{self.settings.max_nesting_depth} levels deep"
                )
                continue
            await self._import_pairing(source, source_type, depth + 1, outcome)

    def _record_failure(
        self,
        outcome: _ItemOutcome,
        pairing: PairedSource,
        error: Exception,
        reason: str,
    ) -> None:
        volumes_failed_total.labels(reason=reason).inc()
        outcome.errors.append(f"{pairing.base_path}: {error}")
        logger.warning(
            "Volume import failed",
            pairing_id=pairing.id,
            base_path=pairing.base_path,
            reason=reason,
            error=str(error),
        )

    async def _materialize(self, pairing: PairedSource, source_type: SourceType) -> _Materialized:
        """Turn a pairing into processor input."""
        match pairing.source:
            case ArchiveSource(archive=archive):
                return await self._expand_archive(pairing, archive, source_type)
            case DirectorySource() | TocDirectorySource():
                return _Materialized(
                    volumes=[
                        DecompressedVolume(
                            metadata_file=pairing.metadata_file,
                            image_files=_source_files(pairing.source),
                            base_path=pairing.base_path,
                            source_type=source_type,
                        )
                    ]
                )
            case _:
                raise TypeError(f"Unsupported source kind: {pairing.kind}")

    async def _expand_archive(
        self,
        pairing: PairedSource,
        archive: FileEntry,
        source_type: SourceType,
    ) -> _Materialized:
        """Decompress an archive and pair its contents.

        An external sidecar is placed at the archive root so that it pairs
        with the contents like any other sidecar would; if it still finds no
        match, it takes every image in the archive. Archives inside the
        archive are handed back as nested pairings.

        Raises:
            ArchiveContentError: The archive cannot be read, or holds neither
                an importable volume nor a nested archive
        """
        decompressed = await self.decompressor.decompress(archive)
        inner_entries = [FileEntry(path=e.filename, content=e.data) for e in decompressed]

        external: FileEntry | None = None
        if pairing.metadata_file is not None:
            root_name = split_path(pairing.metadata_file.path)[1]
            if all(entry.path != root_name for entry in inner_entries):
                content = await asyncio.to_thread(pairing.metadata_file.read_bytes)
                external = FileEntry(path=root_name, content=content)
                inner_entries.append(external)

        inner = pair_sources(inner_entries)
        materialized = _Materialized()
        nested_archives: list[FileEntry] = []
        candidates: list[PairedSource] = []

        for inner_pairing in inner.pairings:
            if isinstance(inner_pairing.source, ArchiveSource):
                if inner_pairing.metadata_file is None:
                    nested_archives.append(inner_pairing.source.archive)
                else:
                    materialized.nested.append(_rebase(inner_pairing, pairing))
                continue
            if inner_pairing.image_only and not self.settings.import_image_only:
                continue
            candidates.append(inner_pairing)

        warnings = list(inner.warnings)
        if external is not None and all(p.metadata_file is not external for p in inner.pairings):
            images = {
                entry.path: entry
                for entry in inner_entries
                if classify_path(entry.path) == FileCategory.IMAGE
            }
            if images:
                candidates = [p for p in candidates if not p.image_only]
                warnings = [w for w in warnings if external.path not in w]
                materialized.volumes.append(
                    DecompressedVolume(
                        metadata_file=external,
                        image_files=images,
                        base_path=pairing.base_path,
                        source_type=source_type,
                    )
                )

        materialized.warnings.extend(f"{archive.path}: {warning}" for warning in warnings)

        for candidate in candidates:
            materialized.volumes.append(
                DecompressedVolume(
                    metadata_file=candidate.metadata_file,
                    image_files=_source_files(candidate.source),
                    base_path=join_path(pairing.base_path, candidate.base_path),
                    source_type=source_type,
                )
            )

        if len(materialized.volumes) == 1:
            materialized.volumes[0].base_path = pairing.base_path

        if materialized.volumes:
            materialized.volumes[0].nested_archives.extend(nested_archives)
        else:
            materialized.nested.extend(nested_source_for_archive(a) for a in nested_archives)

        if not materialized.volumes and not materialized.nested:
            raise ArchiveContentError(EMPTY_ARCHIVE_MESSAGE)

        logger.debug(
            "Archive expanded",
            archive=archive.path,
            files=len(inner_entries),
            volumes=len(materialized.volumes),
            nested=len(materialized.nested) + len(nested_archives),
        )
        return materialized


def _source_files(source: DirectorySource | TocDirectorySource) -> dict[str, FileEntry]:
    """Image files of a folder source; chapter files are keyed ``chapter/file``."""
    if isinstance(source, DirectorySource):
        return dict(source.files)
    return {
        join_path(chapter, filename): entry
        for chapter, files in source.chapters.items()
        for filename, entry in files.items()
    }


def _rebase(inner: PairedSource, outer: PairedSource) -> PairedSource:
    """Re-anchor a pairing found inside an archive under the archive's path."""
    return PairedSource(
        metadata_file=inner.metadata_file,
        source=inner.source,
        base_path=join_path(outer.base_path, inner.base_path),
        estimated_size=inner.estimated_size,
        image_only=inner.image_only,
    )
