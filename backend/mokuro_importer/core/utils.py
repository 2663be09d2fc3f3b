"""Shared path, ordering and identifier helpers."""

from __future__ import annotations

import hashlib
import re
import unicodedata
import uuid

_DIGIT_RUN_PATTERN = re.compile(r"(\d+)")
_WHITESPACE_PATTERN = re.compile(r"\s+")


def to_forward_slashes(path: str) -> str:
    """Convert Windows separators to forward slashes and drop leading "./" and "/"."""
    path = path.replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path.lstrip("/")


def normalize_path(path: str) -> str:
    """Normalize a path for case-insensitive comparison.

    Args:
        path: Path using any separator style

    Returns:
        NFC-normalized, lowercased path with forward slashes
    """
    return unicodedata.normalize("NFC", to_forward_slashes(path)).lower()


def normalize_name(name: str) -> str:
    """Normalize a single name (stem or folder) for case-insensitive comparison."""
    return unicodedata.normalize("NFC", name).casefold()


def split_path(path: str) -> tuple[str, str]:
    """Split a forward-slash path into (parent_dir, filename).

    Root-level entries have an empty parent_dir.
    """
    parent, _, filename = path.rpartition("/")
    return parent, filename


def join_path(parent: str, name: str) -> str:
    """Join two forward-slash path fragments, ignoring an empty parent."""
    if not parent:
        return name
    if not name:
        return parent
    return f"{parent}/{name}"


def strip_extension(path: str) -> str:
    """Drop the extension of the last path segment, if it has one."""
    parent, filename = split_path(path)
    stem, dot, _ = filename.rpartition(".")
    if not dot or not stem:
        return path
    return join_path(parent, stem)


def file_stem(path: str) -> str:
    """Return the last path segment without its extension."""
    return split_path(strip_extension(path))[1]


def is_within(path: str, directory: str) -> bool:
    """Check whether ``path`` equals ``directory`` or lies below it.

    The empty directory is the root and contains everything.
    """
    if not directory:
        return True
    return path == directory or path.startswith(directory + "/")


def natural_sort_key(value: str) -> list[int | str]:
    """Generate a sort key that orders embedded numbers numerically.

    "page2.jpg" sorts before "page10.jpg". Comparison is case-insensitive.

    Args:
        value: String to build a key for

    Returns:
        List alternating text fragments and integers
    """
    parts: list[int | str] = []
    for index, fragment in enumerate(_DIGIT_RUN_PATTERN.split(value.lower())):
        # Odd positions are always digit runs
        parts.append(int(fragment) if index % 2 else fragment)
    return parts


def natural_sorted(values: list[str]) -> list[str]:
    """Return ``values`` in natural order, ties broken by the raw string."""
    return sorted(values, key=lambda v: (natural_sort_key(v), v))


def deterministic_uuid(name: str) -> str:
    """Derive a stable UUID-formatted identifier from a name.

    Case, Unicode composition and surrounding/repeated whitespace do not
    affect the result, so "My Series", " my  series " and "MY SERIES" all map
    to the same identifier.

    Args:
        name: Human readable name (typically a series title)

    Returns:
        Version 4 / RFC 4122 variant UUID string derived from a SHA-256 digest
    """
    normalized = _WHITESPACE_PATTERN.sub(" ", unicodedata.normalize("NFC", name)).strip()
    digest = hashlib.sha256(normalized.casefold().encode("utf-8")).digest()
    return str(uuid.UUID(bytes=digest[:16], version=4))
