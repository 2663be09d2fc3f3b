"""Collect import entries from a folder on the server."""

from __future__ import annotations

from pathlib import Path

import structlog

from mokuro_importer.core.importing.classifier import is_ignorable_path
from mokuro_importer.core.importing.models import FileEntry

logger = structlog.get_logger("mokuro_importer.importing.local")


class LocalFolderProvider:
    """Walks a local folder into lazily-read FileEntry objects."""

    def collect_entries(self, folder: Path) -> list[FileEntry]:
        """Collect every regular file below ``folder``.

        Paths are relative to the folder's parent, so the folder name itself
        is the top-level segment (``Series/vol1/001.jpg``). File contents are
        not read here.

        Args:
            folder: Folder to walk

        Returns:
            FileEntry objects sorted by path

        Raises:
            FileNotFoundError: ``folder`` does not exist or is not a directory
        """
        if not folder.is_dir():
            raise FileNotFoundError(f"Folder not found: {folder}")

        root = folder.parent
        entries = []
        skipped = 0
        for file_path in folder.rglob("*"):
            if not file_path.is_file():
                continue
            relative = file_path.relative_to(root).as_posix()
            if is_ignorable_path(relative):
                skipped += 1
                continue
            entries.append(FileEntry(path=relative, content=file_path))

        entries.sort(key=lambda e: e.path)
        logger.info(
            "Collected local files",
            folder=str(folder),
            files=len(entries),
            ignored=skipped,
        )
        return entries
