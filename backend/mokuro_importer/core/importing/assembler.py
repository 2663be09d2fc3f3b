"""Group classified image files into candidate sources."""

from __future__ import annotations

from collections.abc import Iterable

from mokuro_importer.core.importing.models import FileEntry
from mokuro_importer.core.utils import is_within, join_path, split_path

# directory path -> {filename: entry}
DirectoryStructure = dict[str, dict[str, FileEntry]]


def build_directory_structure(images: Iterable[FileEntry]) -> DirectoryStructure:
    """Index images by the directory that directly contains them.

    Directories and the files inside each are inserted in path order, so
    iterating the result is deterministic. Root-level images live under "".
    """
    structure: DirectoryStructure = {}
    for entry in sorted(images, key=lambda e: e.path):
        parent_dir, filename = split_path(entry.path)
        structure.setdefault(parent_dir, {})[filename] = entry
    return dict(sorted(structure.items()))


def collect_tree(
    structure: DirectoryStructure,
    directories: Iterable[str],
    depth: int,
) -> dict[str, FileEntry]:
    """Merge image directories into one file map.

    Keys drop the first ``depth`` path segments, so they are relative to the
    common ancestor directory at that depth.
    """
    files: dict[str, FileEntry] = {}
    for directory in directories:
        relative_dir = "/".join(directory.split("/")[depth:])
        for filename, entry in structure[directory].items():
            files[join_path(relative_dir, filename)] = entry
    return files


def child_image_directories(
    structure: DirectoryStructure,
    directory: str,
    claimed: set[str],
) -> list[str]:
    """Unclaimed image directories that are direct children of ``directory``."""
    children = []
    for candidate in structure:
        if candidate in claimed or candidate == directory:
            continue
        if not is_within(candidate, directory):
            continue
        if split_path(candidate)[0] == directory:
            children.append(candidate)
    return children


def find_toc_chapters(
    structure: DirectoryStructure,
    directory: str,
    claimed: set[str],
) -> dict[str, dict[str, FileEntry]]:
    """Chapters of ``directory`` if it is a table-of-contents candidate.

    A directory qualifies when it holds no images itself but at least one
    direct child directory does. Chapter names are the child folder names.

    Returns:
        Mapping of chapter name to {filename: entry}; empty when the
        directory does not qualify
    """
    if directory in structure:
        return {}
    return {
        split_path(child)[1]: dict(structure[child])
        for child in child_image_directories(structure, directory, claimed)
    }


def directory_size(files: Iterable[FileEntry]) -> int:
    return sum(entry.size for entry in files)
