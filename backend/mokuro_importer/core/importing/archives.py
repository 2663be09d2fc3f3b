"""Archive decompression."""

from __future__ import annotations

import asyncio
import zipfile
from io import BytesIO
from typing import Protocol

import structlog

from mokuro_importer.core.importing.classifier import is_ignorable_path
from mokuro_importer.core.importing.errors import ArchiveContentError
from mokuro_importer.core.importing.models import DecompressedEntry, FileEntry
from mokuro_importer.core.utils import to_forward_slashes

logger = structlog.get_logger("mokuro_importer.importing.archives")


class Decompressor(Protocol):
    """Turns one archive into the files it contains, all at once."""

    async def decompress(self, archive: FileEntry) -> list[DecompressedEntry]: ...


def _read_zip(archive: FileEntry) -> list[DecompressedEntry]:
    try:
        with zipfile.ZipFile(BytesIO(archive.read_bytes())) as zf:
            entries = []
            for info in zf.infolist():
                if info.is_dir():
                    continue
                filename = to_forward_slashes(info.filename)
                if not filename or is_ignorable_path(filename):
                    continue
                entries.append(DecompressedEntry(filename=filename, data=zf.read(info)))
            return entries
    except (zipfile.BadZipFile, zipfile.LargeZipFile, NotImplementedError) as e:
        raise ArchiveContentError(f"Could not read archive {archive.path}: {e}") from e


class ZipDecompressor:
    """Zip/cbz reader running in a worker thread."""

    async def decompress(self, archive: FileEntry) -> list[DecompressedEntry]:
        """Decompress an archive.

        Args:
            archive: Archive file entry

        Returns:
            Every regular, non-ignorable file in the archive

        Raises:
            ArchiveContentError: The archive is corrupt or uses an
                unsupported format
        """
        entries = await asyncio.to_thread(_read_zip, archive)
        logger.debug("Archive decompressed", archive=archive.path, files=len(entries))
        return entries
