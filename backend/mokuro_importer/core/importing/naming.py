"""Derive series and volume names from a folder or archive path.

Used for volumes that come without sidecar metadata, where the path is the
only naming information there is.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import NamedTuple

from mokuro_importer.core.config import DEFAULT_GENERIC_PARENT_FOLDERS
from mokuro_importer.core.utils import to_forward_slashes

UNTITLED = "Untitled"

_ARCHIVE_EXTENSION_PATTERN = re.compile(r"\.(?:zip|cbz|cbr|rar|7z)$", re.IGNORECASE)

# Release-group, source and year tags: "[Group]", "【作者】", "(2019)", "(Digital)"
_NOISE_PATTERNS = [
    re.compile(r"\[[^\]]*\]"),
    re.compile(r"【[^】]*】"),
    re.compile(r"[(（]\s*(?:19|20)\d{2}(?:\s*[-–]\s*(?:19|20)?\d{2,4})?\s*[)）]"),
    re.compile(
        r"[(（][^)）]*\b(?:digital|scans?|scanlation|raw|hq|lq|c2c|webrip|web|"
        r"\d{3,4}p|official|complete)\b[^)）]*[)）]",
        re.IGNORECASE,
    ),
]

# Scan-quality markers left dangling at the end of a name
_TRAILING_QUALITY_PATTERN = re.compile(
    r"[\s\-_.]+(?:hq|lq|raw|raws|digital|c2c|webrip|\d{3,4}p)$",
    re.IGNORECASE,
)

_QUOTE_PAIRS = [("「", "」"), ("『", "』"), ("“", "”"), ('"', '"'), ("'", "'")]

_SEPARATOR_PATTERN = re.compile(r"[_\s]+")
_EDGE_PUNCTUATION = " -_.,:;~"

# Volume markers, most specific first. "series" is everything before the marker.
VOLUME_PATTERNS = [
    # 第3巻
    re.compile(r"^(?P<series>.*?)\s*第\s*(?P<number>[\d一二三四五六七八九十百〇]+)\s*巻"),
    # 3巻
    re.compile(r"^(?P<series>.*?)\s*(?P<number>\d+)\s*巻"),
    # Vol. 3, Volume 3, V. 3
    re.compile(
        r"^(?P<series>.*?)[\s\-_.,]*\b(?:vol(?:ume)?|v)\.?\s*(?P<number>\d+(?:\.\d+)?)\b",
        re.IGNORECASE,
    ),
    # v03
    re.compile(r"^(?P<series>.*?)[\s\-_.,]*\bv(?P<number>\d+)\b", re.IGNORECASE),
    # Ch. 12, Chapter 12
    re.compile(
        r"^(?P<series>.*?)[\s\-_.,]*\b(?:ch(?:apter)?)\.?\s*(?P<number>\d+(?:\.\d+)?)\b",
        re.IGNORECASE,
    ),
    # Ver. 2
    re.compile(
        r"^(?P<series>.*?)[\s\-_.,]*\bver\.?\s*(?P<number>\d+(?:\.\d+)?)\b",
        re.IGNORECASE,
    ),
    # #3
    re.compile(r"^(?P<series>.*?)\s*#\s*(?P<number>\d+(?:\.\d+)?)"),
    # "Title - 03", "Title_03", "Title 03"
    re.compile(r"^(?P<series>.+?)\s*[-_ ]\s*(?P<number>\d+(?:\.\d+)?)$"),
    # "Title03"
    re.compile(r"^(?P<series>.*?\D)(?P<number>\d+)$"),
]


class VolumeInfo(NamedTuple):
    series_name: str
    volume_name: str


def _strip_quotes(name: str) -> str:
    for opening, closing in _QUOTE_PAIRS:
        if len(name) > 2 and name.startswith(opening) and name.endswith(closing):
            return name[1:-1].strip()
    return name


def clean_name(name: str) -> str:
    """Remove tags, quality markers, quotes and separator noise from one path segment.

    Returns an empty string when nothing but noise is left.
    """
    cleaned = _ARCHIVE_EXTENSION_PATTERN.sub("", name)
    for pattern in _NOISE_PATTERNS:
        cleaned = pattern.sub(" ", cleaned)
    cleaned = _SEPARATOR_PATTERN.sub(" ", cleaned).strip(_EDGE_PUNCTUATION)

    previous = None
    while previous != cleaned:
        previous = cleaned
        cleaned = _TRAILING_QUALITY_PATTERN.sub("", cleaned).strip(_EDGE_PUNCTUATION)

    return _strip_quotes(cleaned)


def split_volume_marker(name: str) -> tuple[str, str] | None:
    """Find the first volume marker in a cleaned name.

    Returns:
        (series prefix, volume number) for the first matching pattern, or
        None when the name carries no recognizable marker
    """
    for pattern in VOLUME_PATTERNS:
        match = pattern.search(name)
        if match:
            series = _strip_quotes(match.group("series").strip(_EDGE_PUNCTUATION))
            return series, match.group("number")
    return None


def _path_segments(base_path: str) -> list[str]:
    path = _ARCHIVE_EXTENSION_PATTERN.sub("", to_forward_slashes(base_path))
    return [segment for segment in path.split("/") if segment.strip()]


def _is_generic(name: str, generic_parents: Iterable[str]) -> bool:
    lowered = name.strip().lower()
    return any(lowered == generic.strip().lower() for generic in generic_parents)


def extract_series_name(
    base_path: str,
    generic_parents: Iterable[str] = DEFAULT_GENERIC_PARENT_FOLDERS,
) -> str:
    """Guess the series a volume folder or archive belongs to.

    - "Series Vol. 3" and "作品 第3巻" give the text before the marker
    - "My Series/Volume 03" gives the parent folder
    - "My Series/Some Title" gives the parent folder unless it is generic
      ("downloads", "manga", "raw", language codes, ...)
    - anything else gives the cleaned leaf name

    Args:
        base_path: Folder or archive path of the volume
        generic_parents: Parent folder names never used as a series name

    Returns:
        Series name, "Untitled" for an empty path
    """
    segments = _path_segments(base_path)
    if not segments:
        return UNTITLED

    leaf = clean_name(segments[-1]) or segments[-1].strip()
    parent = clean_name(segments[-2]) if len(segments) > 1 else ""
    usable_parent = parent if parent and not _is_generic(parent, generic_parents) else ""

    marker = split_volume_marker(leaf)
    if marker and marker[0]:
        return marker[0]
    if usable_parent:
        return usable_parent
    return leaf


def extract_volume_info(
    base_path: str,
    generic_parents: Iterable[str] = DEFAULT_GENERIC_PARENT_FOLDERS,
) -> VolumeInfo:
    """Derive (series, volume) names for an image-only volume.

    The volume name is the cleaned leaf segment; the series name comes from
    extract_series_name().
    """
    segments = _path_segments(base_path)
    if not segments:
        return VolumeInfo(UNTITLED, UNTITLED)

    volume_name = clean_name(segments[-1]) or segments[-1].strip()
    return VolumeInfo(extract_series_name(base_path, generic_parents), volume_name)


def display_title(base_path: str) -> str:
    """Short title for logs and queue listings: the last path segment."""
    segments = _path_segments(base_path)
    return segments[-1] if segments else UNTITLED
