"""Pair sidecar metadata files with the images or archives they describe.

Pairing runs ordered passes over one flat list of input files. Each pass only
looks at sidecar files and sources no earlier pass has claimed:

1. same directory: ``vol/vol.mokuro`` next to ``vol/001.jpg``
2. same-stem directory: ``vol.mokuro`` next to ``vol/`` (and folders below it)
3. same-stem archive: ``vol.mokuro`` next to ``vol.cbz``
4. table of contents: ``vol/vol.mokuro`` above ``vol/ch1/``, ``vol/ch2/``

Sidecar files still unclaimed afterwards are reported as orphans. Archives
and image directories still unclaimed become pairings without metadata.

A sidecar only ever claims sources in its own directory or below it, so
identically named folders in different series folders never cross over.
Running the directory pass before the archive pass makes an already
extracted folder win over a redundant archive of the same name.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

import structlog

from mokuro_importer.core.importing.assembler import (
    DirectoryStructure,
    build_directory_structure,
    collect_tree,
    directory_size,
    find_toc_chapters,
)
from mokuro_importer.core.importing.classifier import classify_path, parse_file_path
from mokuro_importer.core.importing.models import (
    ArchiveSource,
    DirectorySource,
    FileCategory,
    FileEntry,
    PairedSource,
    PairingResult,
    TocDirectorySource,
)
from mokuro_importer.core.utils import (
    is_within,
    join_path,
    normalize_name,
    normalize_path,
    strip_extension,
)

logger = structlog.get_logger("mokuro_importer.importing.pairing")

# Decompressed images are typically this much larger than their archive
ARCHIVE_SIZE_FACTOR = 2.5

ORPHAN_WARNING = "Orphaned mokuro file: {path} (no matching images or archive)"


def estimate_archive_size(archive: FileEntry) -> int:
    return int(archive.size * ARCHIVE_SIZE_FACTOR)


@dataclass
class _PairingState:
    """Bookkeeping for one pair_sources() call."""

    structure: DirectoryStructure
    archives: list[FileEntry]
    claimed_dirs: set[str] = field(default_factory=set)
    claimed_archives: set[str] = field(default_factory=set)

    def unclaimed_dirs(self) -> list[str]:
        return [d for d in self.structure if d not in self.claimed_dirs]


def _pair_same_directory(metadata: FileEntry, state: _PairingState) -> PairedSource | None:
    parsed = parse_file_path(metadata.path)
    directory = parsed.parent_dir
    if directory not in state.structure or directory in state.claimed_dirs:
        return None

    state.claimed_dirs.add(directory)
    files = dict(state.structure[directory])
    return PairedSource(
        metadata_file=metadata,
        source=DirectorySource(files=files),
        base_path=directory or parsed.stem,
        estimated_size=directory_size(files.values()) + metadata.size,
    )


def _pair_same_stem_directory(metadata: FileEntry, state: _PairingState) -> PairedSource | None:
    parsed = parse_file_path(metadata.path)
    volume_dir = join_path(parsed.parent_dir, parsed.stem)
    target = normalize_path(volume_dir)

    matches = [d for d in state.unclaimed_dirs() if is_within(normalize_path(d), target)]
    if not matches:
        return None

    state.claimed_dirs.update(matches)
    depth = len(volume_dir.split("/"))
    files = collect_tree(state.structure, matches, depth)
    return PairedSource(
        metadata_file=metadata,
        source=DirectorySource(files=files),
        base_path="/".join(matches[0].split("/")[:depth]),
        estimated_size=directory_size(files.values()) + metadata.size,
    )


def _pair_same_stem_archive(metadata: FileEntry, state: _PairingState) -> PairedSource | None:
    parsed = parse_file_path(metadata.path)
    parent = normalize_path(parsed.parent_dir)
    stem = normalize_name(parsed.stem)

    for archive in state.archives:
        if archive.path in state.claimed_archives:
            continue
        candidate = parse_file_path(archive.path)
        if normalize_path(candidate.parent_dir) != parent:
            continue
        if normalize_name(candidate.stem) != stem:
            continue

        state.claimed_archives.add(archive.path)
        return PairedSource(
            metadata_file=metadata,
            source=ArchiveSource(archive=archive),
            base_path=strip_extension(archive.path),
            estimated_size=estimate_archive_size(archive) + metadata.size,
        )
    return None


def _pair_toc_directory(metadata: FileEntry, state: _PairingState) -> PairedSource | None:
    parsed = parse_file_path(metadata.path)
    directory = parsed.parent_dir
    # root-level sidecars never form a table of contents
    if not directory:
        return None
    chapters = find_toc_chapters(state.structure, directory, state.claimed_dirs)
    if not chapters:
        return None

    state.claimed_dirs.update(join_path(directory, chapter) for chapter in chapters)
    size = sum(directory_size(files.values()) for files in chapters.values())
    return PairedSource(
        metadata_file=metadata,
        source=TocDirectorySource(chapters=chapters),
        base_path=directory,
        estimated_size=size + metadata.size,
    )


PAIRING_PASSES: tuple[Callable[[FileEntry, _PairingState], PairedSource | None], ...] = (
    _pair_same_directory,
    _pair_same_stem_directory,
    _pair_same_stem_archive,
    _pair_toc_directory,
)


def pair_sources(entries: Iterable[FileEntry]) -> PairingResult:
    """Pair every sidecar file with at most one source.

    Pure and deterministic: the input is never mutated and the same input
    always yields the same pairings (apart from their fresh ids).

    Args:
        entries: All files of one import, in any order

    Returns:
        PairingResult with the pairings and one warning per orphaned sidecar
    """
    metadata_files: list[FileEntry] = []
    images: list[FileEntry] = []
    archives: list[FileEntry] = []

    for entry in sorted(entries, key=lambda e: e.path):
        match classify_path(entry.path):
            case FileCategory.METADATA:
                metadata_files.append(entry)
            case FileCategory.IMAGE:
                images.append(entry)
            case FileCategory.ARCHIVE:
                archives.append(entry)
            case _:
                continue

    state = _PairingState(structure=build_directory_structure(images), archives=archives)
    pairings: list[PairedSource] = []

    unclaimed = metadata_files
    for pairing_pass in PAIRING_PASSES:
        remaining = []
        for metadata in unclaimed:
            pairing = pairing_pass(metadata, state)
            if pairing is None:
                remaining.append(metadata)
            else:
                pairings.append(pairing)
        unclaimed = remaining

    warnings = [ORPHAN_WARNING.format(path=metadata.path) for metadata in unclaimed]

    for archive in archives:
        if archive.path in state.claimed_archives:
            continue
        pairings.append(
            PairedSource(
                metadata_file=None,
                source=ArchiveSource(archive=archive),
                base_path=strip_extension(archive.path),
                estimated_size=estimate_archive_size(archive),
            )
        )

    for directory in state.unclaimed_dirs():
        files = dict(state.structure[directory])
        pairings.append(
            PairedSource(
                metadata_file=None,
                source=DirectorySource(files=files),
                base_path=directory,
                estimated_size=directory_size(files.values()),
                image_only=True,
            )
        )

    logger.debug(
        "Sources paired",
        metadata_files=len(metadata_files),
        images=len(images),
        archives=len(archives),
        pairings=len(pairings),
        orphans=len(unclaimed),
    )
    return PairingResult(pairings=pairings, warnings=warnings)
