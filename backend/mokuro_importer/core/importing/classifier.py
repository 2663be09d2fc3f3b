"""Classify input paths by name."""

from __future__ import annotations

from typing import NamedTuple

from mokuro_importer.core.importing.models import FileCategory
from mokuro_importer.core.utils import split_path, to_forward_slashes

METADATA_EXTENSION = "mokuro"
IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "webp", "gif", "bmp", "avif"})
ARCHIVE_EXTENSIONS = frozenset({"zip", "cbz", "cbr", "rar", "7z"})

# Path segments left behind by operating systems, sync clients and VCS tools
IGNORED_SEGMENTS = frozenset(
    name.lower()
    for name in (
        # macOS
        "__MACOSX",
        ".DS_Store",
        ".Trashes",
        ".Spotlight-V100",
        ".fseventsd",
        ".TemporaryItems",
        # Windows
        "Thumbs.db",
        "desktop.ini",
        "$RECYCLE.BIN",
        "RECYCLER",
        "RECYCLED",
        "System Volume Information",
        # Linux desktops
        ".thumbnails",
        ".directory",
        # VCS
        ".git",
        ".svn",
    )
)
IGNORED_SEGMENT_PREFIXES = (".trash", ".dropbox")
IGNORED_FILENAME_PREFIXES = ("._",)
IGNORED_SUFFIXES = ("~", ".bak", ".tmp", ".temp")


class ParsedPath(NamedTuple):
    parent_dir: str
    filename: str
    stem: str
    extension: str


def parse_file_path(path: str) -> ParsedPath:
    """Split a path into parent directory, filename, stem and lowercase extension.

    Args:
        path: File path using any separator style

    Returns:
        ParsedPath; parent_dir is empty for root-level files and extension is
        empty when the filename has none
    """
    parent_dir, filename = split_path(to_forward_slashes(path))
    stem, dot, extension = filename.rpartition(".")
    if not dot or not stem:
        return ParsedPath(parent_dir, filename, filename, "")
    return ParsedPath(parent_dir, filename, stem, extension.lower())


def is_ignorable_path(path: str) -> bool:
    """Check whether a path is an OS, sync-client or VCS artifact.

    A match on any segment makes the whole path ignorable, however deep it
    is nested.
    """
    normalized = to_forward_slashes(path).rstrip("/")
    if normalized.lower().endswith(IGNORED_SUFFIXES):
        return True

    segments = [segment for segment in normalized.split("/") if segment]
    for segment in segments:
        lowered = segment.lower()
        if lowered in IGNORED_SEGMENTS or lowered.startswith(IGNORED_SEGMENT_PREFIXES):
            return True

    return bool(segments) and segments[-1].startswith(IGNORED_FILENAME_PREFIXES)


def classify_path(path: str) -> FileCategory:
    """Categorize a single path.

    Args:
        path: File path using any separator style

    Returns:
        FileCategory for the path. Unknown extensions are OTHER.
    """
    if is_ignorable_path(path):
        return FileCategory.IGNORABLE

    extension = parse_file_path(path).extension
    if extension == METADATA_EXTENSION:
        return FileCategory.METADATA
    if extension in IMAGE_EXTENSIONS:
        return FileCategory.IMAGE
    if extension in ARCHIVE_EXTENSIONS:
        return FileCategory.ARCHIVE
    return FileCategory.OTHER
