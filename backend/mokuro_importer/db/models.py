"""Database models for the volume catalogue.

A persisted volume is spread over three tables written in one transaction:
- volumes: metadata and thumbnail
- volume_ocr: the OCR pages as one JSON document
- volume_files: one row per page image, ordered by position

Table names are plural snake_case; ids of helper rows are uuid.uuid4().hex.
"""

from __future__ import annotations

import time
import uuid
from typing import Any

from sqlalchemy import JSON, Column, Index, LargeBinary
from sqlmodel import Field, SQLModel

metadata = SQLModel.metadata


class Volume(SQLModel, table=True):
    """One imported volume."""

    __tablename__ = "volumes"  # type: ignore[assignment]

    id: str = Field(primary_key=True)  # volume_uuid from the sidecar, or generated
    series_id: str = Field(index=True)
    series_name: str
    volume_name: str
    metadata_version: str = ""  # Empty for image-only volumes
    page_count: int = 0
    total_chars: int = 0
    page_char_counts: list[int] = Field(default_factory=list, sa_column=Column(JSON))
    source_type: str = "local"  # "local" or "cloud"

    thumbnail: bytes | None = Field(default=None, sa_column=Column(LargeBinary))
    thumbnail_width: int | None = None
    thumbnail_height: int | None = None

    mismatch_warning: str | None = None
    missing_pages: int | None = None
    missing_page_paths: list[str] | None = Field(default=None, sa_column=Column(JSON))

    created_at: int = Field(default_factory=lambda: int(time.time()))

    __table_args__ = (
        Index("idx_volumes_series_name", "series_name"),
        Index("idx_volumes_created_at", "created_at"),
    )


class VolumeOcr(SQLModel, table=True):
    """OCR pages of a volume."""

    __tablename__ = "volume_ocr"  # type: ignore[assignment]

    volume_id: str = Field(primary_key=True)
    pages: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))


class VolumeFile(SQLModel, table=True):
    """A page image (real or placeholder) of a volume."""

    __tablename__ = "volume_files"  # type: ignore[assignment]

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True)
    volume_id: str = Field(index=True)
    path: str
    position: int = 0
    data: bytes = Field(sa_column=Column(LargeBinary, nullable=False))

    __table_args__ = (Index("idx_volume_files_volume_position", "volume_id", "position"),)
