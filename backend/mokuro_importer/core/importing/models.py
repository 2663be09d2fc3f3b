"""Data types shared by the import pipeline."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar, Literal, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, field_validator

from mokuro_importer.core.utils import to_forward_slashes

SourceType = Literal["local", "cloud"]


@runtime_checkable
class ByteSource(Protocol):
    """Anything that can produce its bytes on demand (e.g. pathlib.Path)."""

    def read_bytes(self) -> bytes: ...


class FileCategory(StrEnum):
    """What a single input path is, judged from its name alone."""

    METADATA = "metadata"
    IMAGE = "image"
    ARCHIVE = "archive"
    IGNORABLE = "ignorable"
    OTHER = "other"


class SourceKind(StrEnum):
    """Shape of the content a sidecar file (or nothing) is paired with."""

    DIRECTORY = "directory"
    ARCHIVE = "archive"
    TOC_DIRECTORY = "toc-directory"


@dataclass(frozen=True)
class FileEntry:
    """One input file: a forward-slash path plus an opaque byte source."""

    path: str
    content: bytes | ByteSource = field(repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", to_forward_slashes(self.path))

    @property
    def size(self) -> int:
        """Size in bytes, without reading lazily-loaded content."""
        if isinstance(self.content, bytes | bytearray):
            return len(self.content)
        stat = getattr(self.content, "stat", None)
        if callable(stat):
            return int(stat().st_size)
        return 0

    def read_bytes(self) -> bytes:
        """Materialize the content."""
        if isinstance(self.content, bytes | bytearray):
            return bytes(self.content)
        return self.content.read_bytes()


@dataclass(frozen=True)
class DirectorySource:
    """Loose images keyed by their path relative to the volume folder."""

    files: dict[str, FileEntry]
    kind: ClassVar[SourceKind] = SourceKind.DIRECTORY


@dataclass(frozen=True)
class ArchiveSource:
    """A single archive that still has to be decompressed."""

    archive: FileEntry
    kind: ClassVar[SourceKind] = SourceKind.ARCHIVE


@dataclass(frozen=True)
class TocDirectorySource:
    """Chapter folders of one volume, keyed by chapter name."""

    chapters: dict[str, dict[str, FileEntry]]
    kind: ClassVar[SourceKind] = SourceKind.TOC_DIRECTORY


Source = DirectorySource | ArchiveSource | TocDirectorySource


@dataclass
class PairedSource:
    """A source ready for processing, with the sidecar that claimed it (if any)."""

    metadata_file: FileEntry | None
    source: Source
    base_path: str
    estimated_size: int
    image_only: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def kind(self) -> SourceKind:
        return self.source.kind


@dataclass
class PairingResult:
    pairings: list[PairedSource] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class ImportDecision:
    """How the host should handle the pairings of one import call."""

    direct_process: PairedSource | None
    queued: list[PairedSource] = field(default_factory=list)


@dataclass
class ImageMatchResult:
    """Outcome of matching declared page paths to available image files.

    ``matched`` and ``missing`` partition the declared paths, ``extra`` holds
    the available paths no page resolved to and ``remapped`` maps a declared
    path to the differently named file it resolved to.
    """

    matched: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    extra: list[str] = field(default_factory=list)
    remapped: dict[str, str] = field(default_factory=dict)

    def resolve(self, declared_path: str) -> str | None:
        """Return the available path a declared page resolved to, if any."""
        if declared_path in self.remapped:
            return self.remapped[declared_path]
        if declared_path in self.matched:
            return declared_path
        return None


class MokuroPage(BaseModel):
    """One page of a sidecar file. Unknown keys are kept for storage."""

    model_config = ConfigDict(extra="allow")

    img_path: str
    img_width: int | None = None
    img_height: int | None = None
    blocks: list[Any] = Field(default_factory=list)

    @property
    def char_count(self) -> int:
        """Sum of line lengths over all blocks, ignoring malformed lines."""
        total = 0
        for block in self.blocks:
            lines = block.get("lines") if isinstance(block, dict) else None
            if not isinstance(lines, list):
                continue
            total += sum(len(line) for line in lines if isinstance(line, str))
        return total


class ParsedMetadata(BaseModel):
    """Parsed sidecar file.

    Field aliases are the sidecar's own key names.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    version: str
    series_name: str = Field(alias="title")
    series_id: str = Field(alias="title_uuid")
    volume_name: str = Field(alias="volume")
    volume_id: str = Field(alias="volume_uuid")
    pages: list[MokuroPage]
    total_chars: int = Field(default=0, alias="chars")

    @field_validator(
        "version", "series_name", "series_id", "volume_name", "volume_id", mode="before"
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        if isinstance(value, int | float):
            return str(value)
        return value

    @field_validator("total_chars", mode="before")
    @classmethod
    def _default_chars(cls, value: Any) -> Any:
        return 0 if value is None else value


@dataclass
class ProcessedPage:
    """A declared page with its resolved image path and running char count."""

    page: MokuroPage
    img_path: str
    cumulative_chars: int

    def to_storage(self) -> dict[str, Any]:
        """Page as stored alongside the volume (without the running count)."""
        data = self.page.model_dump(exclude_none=True)
        data["img_path"] = self.img_path
        return data


@dataclass
class Thumbnail:
    data: bytes
    width: int
    height: int


@dataclass
class VolumeMetadata:
    """Everything persisted about a volume besides its pages and files."""

    volume_id: str
    series_id: str
    series_name: str
    volume_name: str
    metadata_version: str
    page_count: int
    total_chars: int
    page_char_counts: list[int] = field(default_factory=list)
    thumbnail: Thumbnail | None = None
    mismatch_warning: str | None = None
    missing_pages: int | None = None
    missing_page_paths: list[str] | None = None
    source_type: SourceType = "local"

    @property
    def image_only(self) -> bool:
        """Volumes built without a sidecar carry an empty metadata version."""
        return self.metadata_version == ""


@dataclass
class ProcessedVolume:
    metadata: VolumeMetadata
    ocr_pages: list[ProcessedPage]
    files: dict[str, bytes]
    nested_sources: list[PairedSource] = field(default_factory=list)


@dataclass
class DecompressedVolume:
    """Materialized content of one paired source, ready for processing."""

    metadata_file: FileEntry | None
    image_files: dict[str, FileEntry]
    base_path: str
    source_type: SourceType = "local"
    nested_archives: list[FileEntry] = field(default_factory=list)


@dataclass
class DecompressedEntry:
    """One file produced by the decompression collaborator."""

    filename: str
    data: bytes


class BatchImportResult(BaseModel):
    """Summary of one import call."""

    success: bool = Field(default=True, description="True when no item failed")
    imported_count: int = Field(default=0, description="Volumes persisted")
    failed_count: int = Field(default=0, description="Items that raised an error")
    skipped_count: int = Field(default=0, description="Pairings skipped by import policy")
    errors: list[str] = Field(default_factory=list, description="One message per failure")
    warnings: list[str] = Field(default_factory=list, description="Non-fatal diagnostics")
    volume_ids: list[str] = Field(default_factory=list, description="IDs of imported volumes")
