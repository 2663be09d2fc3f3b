"""Tests for input path classification."""

from __future__ import annotations

import pytest

from mokuro_importer.core.importing.classifier import (
    classify_path,
    is_ignorable_path,
    parse_file_path,
)
from mokuro_importer.core.importing.models import FileCategory


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("vol1.mokuro", FileCategory.METADATA),
        ("Series/Vol1.MOKURO", FileCategory.METADATA),
        ("vol1/001.jpg", FileCategory.IMAGE),
        ("vol1/001.JPEG", FileCategory.IMAGE),
        ("vol1/001.webp", FileCategory.IMAGE),
        ("vol1/001.avif", FileCategory.IMAGE),
        ("vol1.cbz", FileCategory.ARCHIVE),
        ("bundle.ZIP", FileCategory.ARCHIVE),
        ("vol1/notes.txt", FileCategory.OTHER),
        ("README", FileCategory.OTHER),
    ],
)
def test_classify_by_extension(path: str, expected: FileCategory) -> None:
    """Extensions decide the category, case-insensitively."""
    assert classify_path(path) == expected


@pytest.mark.parametrize(
    "path",
    [
        "__MACOSX/vol1/._001.jpg",
        "vol1/__macosx/001.jpg",
        "vol1/.DS_Store",
        "vol1/Thumbs.db",
        "vol1/desktop.ini",
        "$RECYCLE.BIN/vol1/001.jpg",
        ".Trash-1000/vol1/001.jpg",
        ".dropbox.cache/001.jpg",
        "vol1/._001.jpg",
        "vol1/001.jpg~",
        "vol1/001.jpg.bak",
        "vol1/vol1.mokuro.tmp",
        ".git/objects/ab/cdef",
        "vol1\\.DS_Store",
    ],
)
def test_ignorable_paths(path: str) -> None:
    """OS, sync-client and VCS artifacts are ignorable at any depth."""
    assert is_ignorable_path(path)
    assert classify_path(path) == FileCategory.IGNORABLE


@pytest.mark.parametrize(
    "path",
    ["vol1/001.jpg", "trash/vol1.mokuro", "series/my.dropboxish/001.png", "vol1/temp.jpg"],
)
def test_regular_paths_are_not_ignorable(path: str) -> None:
    """Names that merely resemble artifacts are kept."""
    assert not is_ignorable_path(path)


def test_parse_file_path() -> None:
    """Parent, filename, stem and lowercase extension are split out."""
    parsed = parse_file_path("Series\\Vol 01.Mokuro")
    assert parsed.parent_dir == "Series"
    assert parsed.filename == "Vol 01.Mokuro"
    assert parsed.stem == "Vol 01"
    assert parsed.extension == "mokuro"

    root = parse_file_path("noext")
    assert root.parent_dir == ""
    assert root.stem == "noext"
    assert root.extension == ""
