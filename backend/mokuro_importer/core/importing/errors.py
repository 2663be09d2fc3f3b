"""Errors raised while importing a single volume.

Each of these is fatal for one pairing only. The import service catches them
at the batch boundary and reports their message in the batch result.
"""

from __future__ import annotations


class VolumeImportError(Exception):
    """Base class for per-volume import failures."""

    reason = "unexpected"


class InvalidMetadataJsonError(VolumeImportError):
    """The sidecar file is not a well-formed JSON object."""

    reason = "invalid_metadata"

    def __init__(self, path: str, detail: str = "not valid JSON") -> None:
        self.path = path
        super().__init__(f"Invalid mokuro file: {detail} ({path})")


class MissingRequiredFieldsError(VolumeImportError):
    """The sidecar file parsed but lacks required keys."""

    reason = "missing_fields"

    def __init__(self, path: str, missing_fields: list[str]) -> None:
        self.path = path
        self.missing_fields = missing_fields
        super().__init__(
            f"Invalid mokuro file: missing required fields: {', '.join(missing_fields)} ({path})"
        )


class VolumeAlreadyExistsError(VolumeImportError):
    """A volume with the same identifier is already persisted."""

    reason = "duplicate"

    def __init__(self, volume_id: str, volume_name: str | None = None) -> None:
        self.volume_id = volume_id
        self.volume_name = volume_name
        super().__init__(f'Volume "{volume_name or volume_id}" already exists')


class ArchiveContentError(VolumeImportError):
    """An archive could not be read or held nothing importable."""

    reason = "archive"
