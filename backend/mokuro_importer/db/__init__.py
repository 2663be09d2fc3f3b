"""Database models.

This module exports all database models.
"""

from __future__ import annotations

from mokuro_importer.db.models import Volume, VolumeFile, VolumeOcr, metadata

__all__ = [
    "metadata",
    "Volume",
    "VolumeOcr",
    "VolumeFile",
]
