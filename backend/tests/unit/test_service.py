"""Tests for batch import orchestration."""

from __future__ import annotations

import asyncio

import pytest
from structlog.testing import capture_logs

from mokuro_importer.core.config import Settings
from mokuro_importer.core.importing.errors import VolumeAlreadyExistsError
from mokuro_importer.core.importing.models import FileEntry, ProcessedVolume, Thumbnail
from mokuro_importer.core.importing.service import EMPTY_ARCHIVE_MESSAGE, ImportService
from mokuro_importer.core.metrics import volumes_failed_total, volumes_imported_total
from tests.factories import entries, make_mokuro, make_zip


class StubThumbnailer:
    async def generate(self, image_data: bytes) -> Thumbnail:
        return Thumbnail(data=b"thumb", width=10, height=15)


class InMemoryStore:
    """Volume sink that keeps processed volumes in a dict."""

    def __init__(self, delay: float = 0.0) -> None:
        self.volumes: dict[str, ProcessedVolume] = {}
        self.delay = delay

    async def exists(self, volume_id: str) -> bool:
        return volume_id in self.volumes

    async def save(self, processed: ProcessedVolume) -> ProcessedVolume:
        if self.delay:
            await asyncio.sleep(self.delay)
        meta = processed.metadata
        if meta.volume_id in self.volumes:
            raise VolumeAlreadyExistsError(meta.volume_id, meta.volume_name)
        self.volumes[meta.volume_id] = processed
        return processed


class BrokenStore(InMemoryStore):
    async def save(self, processed: ProcessedVolume) -> ProcessedVolume:
        raise RuntimeError("disk full")


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture(autouse=True)
def clear_import_counters() -> None:
    volumes_imported_total._metrics.clear()
    volumes_failed_total._metrics.clear()


def _service(store, **overrides) -> ImportService:
    return ImportService(store, thumbnailer=StubThumbnailer(), settings=Settings(**overrides))


def _volume_files(folder: str, **mokuro_kwargs) -> dict[str, bytes]:
    """Sidecar plus a same-stem image folder for one volume."""
    images = ["001.jpg", "002.jpg"]
    return {
        f"{folder}.mokuro": make_mokuro(images, **mokuro_kwargs),
        **{f"{folder}/{image}": b"img-" + image.encode() for image in images},
    }


class TestDirectoryImports:
    """Imports of plain folders."""

    async def test_single_volume(self, store: InMemoryStore) -> None:
        """A sidecar with its image folder becomes one stored volume."""
        result = await _service(store).import_entries(entries(_volume_files("vol1")))

        assert result.success is True
        assert result.imported_count == 1
        assert result.volume_ids == ["volume-uuid-1"]
        stored = store.volumes["volume-uuid-1"]
        assert stored.metadata.series_name == "Test Series"
        assert stored.metadata.thumbnail == Thumbnail(data=b"thumb", width=10, height=15)
        assert sorted(stored.files) == ["001.jpg", "002.jpg"]
        assert volumes_imported_total.labels(kind="mokuro")._value.get() == 1

    async def test_imported_volume_is_logged_with_title(self, store: InMemoryStore) -> None:
        """The import log event carries the folder title of the source."""
        with capture_logs() as logs:
            await _service(store).import_entries(entries(_volume_files("Series/vol1")))

        imported = [log for log in logs if log["event"] == "Volume imported"]
        assert len(imported) == 1
        assert imported[0]["title"] == "vol1"
        assert imported[0]["volume_id"] == "volume-uuid-1"

    async def test_orphan_sidecar_is_a_warning(self, store: InMemoryStore) -> None:
        """A sidecar with nothing to pair with warns but does not fail the batch."""
        files = {
            **_volume_files("vol1"),
            "lonely.mokuro": make_mokuro(["x.jpg"], volume_uuid="lonely"),
        }
        result = await _service(store).import_entries(entries(files))

        assert result.success is True
        assert result.imported_count == 1
        assert result.warnings == [
            "Orphaned mokuro file: lonely.mokuro (no matching images or archive)"
        ]

    async def test_image_only_folder_is_imported(self, store: InMemoryStore) -> None:
        """Folders without a sidecar become image-only volumes."""
        files = {"My Series/Volume 03/001.jpg": b"a", "My Series/Volume 03/002.jpg": b"b"}
        result = await _service(store).import_entries(entries(files))

        assert result.imported_count == 1
        stored = store.volumes[result.volume_ids[0]]
        assert stored.metadata.image_only is True
        assert stored.metadata.series_name == "My Series"
        assert volumes_imported_total.labels(kind="image_only")._value.get() == 1

    async def test_image_only_folder_skipped_when_disabled(self, store: InMemoryStore) -> None:
        """With image-only imports disabled the folder is skipped, not failed."""
        files = {"My Series/Volume 03/001.jpg": b"a"}
        result = await _service(store, import_image_only=False).import_entries(entries(files))

        assert result.success is True
        assert result.imported_count == 0
        assert result.skipped_count == 1
        assert result.warnings == [
            "Skipped folder without mokuro file: My Series/Volume 03"
        ]
        assert store.volumes == {}

    async def test_missing_images_are_reported(self, store: InMemoryStore) -> None:
        """Declared pages without an image get placeholders and a warning."""
        files = {
            "vol1.mokuro": make_mokuro(["001.jpg", "002.jpg"]),
            "vol1/001.jpg": b"img",
        }
        result = await _service(store).import_entries(entries(files))

        assert result.imported_count == 1
        assert result.warnings == ["Volume 1: Missing images: 002.jpg"]
        assert store.volumes["volume-uuid-1"].metadata.missing_pages == 1


class TestFailureIsolation:
    """One broken item never takes its siblings down."""

    async def test_invalid_sidecar_does_not_stop_siblings(self, store: InMemoryStore) -> None:
        files = {
            **_volume_files("good"),
            "bad.mokuro": b"{not json",
            "bad/001.jpg": b"img",
        }
        result = await _service(store).import_entries(entries(files))

        assert result.success is False
        assert result.imported_count == 1
        assert result.failed_count == 1
        assert result.errors[0].startswith("bad: Invalid mokuro file")
        assert volumes_failed_total.labels(reason="invalid_metadata")._value.get() == 1

    async def test_duplicate_volume_is_reported(self, store: InMemoryStore) -> None:
        """Re-importing a volume fails that item with a duplicate error."""
        service = _service(store)
        await service.import_entries(entries(_volume_files("vol1")))

        result = await service.import_entries(entries(_volume_files("vol1")))

        assert result.success is False
        assert result.failed_count == 1
        assert result.errors == ['vol1: Volume "Volume 1" already exists']
        assert len(store.volumes) == 1

    async def test_duplicate_beside_new_volume(self, store: InMemoryStore) -> None:
        """The new sibling of a duplicate volume is still imported."""
        service = _service(store)
        await service.import_entries(entries(_volume_files("vol1")))

        files = {
            **_volume_files("vol1"),
            **_volume_files("vol2", volume="Volume 2", volume_uuid="volume-uuid-2"),
        }
        result = await service.import_entries(entries(files))

        assert result.imported_count == 1
        assert result.failed_count == 1
        assert result.volume_ids == ["volume-uuid-2"]

    async def test_unexpected_store_error_is_recorded(self) -> None:
        """Errors that are not import errors are still captured per item."""
        result = await _service(BrokenStore()).import_entries(entries(_volume_files("vol1")))

        assert result.success is False
        assert result.errors == ["vol1: disk full"]
        assert volumes_failed_total.labels(reason="unexpected")._value.get() == 1


class TestArchiveImports:
    """Archives with external, internal or no sidecar."""

    async def test_archive_with_external_sidecar(self, store: InMemoryStore) -> None:
        archive = make_zip({"001.jpg": b"one", "002.jpg": b"two"})
        files = {
            "Series/vol1.mokuro": make_mokuro(["001.jpg", "002.jpg"]),
            "Series/vol1.cbz": archive,
        }
        result = await _service(store).import_entries(entries(files))

        assert result.success is True
        assert result.volume_ids == ["volume-uuid-1"]
        stored = store.volumes["volume-uuid-1"]
        assert stored.files == {"001.jpg": b"one", "002.jpg": b"two"}
        assert stored.metadata.missing_pages is None

    async def test_external_sidecar_with_images_in_subfolder(self, store: InMemoryStore) -> None:
        """Images in a folder inside the archive still pair with the outer sidecar."""
        archive = make_zip({"scans/001.jpg": b"one", "scans/002.jpg": b"two"})
        files = {
            "vol1.mokuro": make_mokuro(["001.jpg", "002.jpg"]),
            "vol1.zip": archive,
        }
        result = await _service(store).import_entries(entries(files))

        assert result.imported_count == 1
        stored = store.volumes["volume-uuid-1"]
        assert sorted(stored.files) == ["scans/001.jpg", "scans/002.jpg"]
        assert [page.img_path for page in stored.ocr_pages] == [
            "scans/001.jpg",
            "scans/002.jpg",
        ]

    async def test_external_sidecar_read_from_disk(self, store: InMemoryStore, tmp_path) -> None:
        """A sidecar backed by a file on disk is read when its archive expands."""
        sidecar = tmp_path / "vol1.mokuro"
        sidecar.write_bytes(make_mokuro(["001.jpg"]))
        archive = make_zip({"001.jpg": b"one"})
        result = await _service(store).import_entries(
            [
                FileEntry(path="vol1.mokuro", content=sidecar),
                FileEntry(path="vol1.cbz", content=archive),
            ]
        )

        assert result.volume_ids == ["volume-uuid-1"]
        assert store.volumes["volume-uuid-1"].files == {"001.jpg": b"one"}

    async def test_reimported_archive_does_not_duplicate_nested_volumes(
        self, store: InMemoryStore
    ) -> None:
        """A duplicate archive fails once; the archives inside it are not retried."""
        archive = make_zip(
            {
                "001.jpg": b"one",
                "bonus.cbz": make_zip({"001.jpg": b"extra"}),
            }
        )
        files = {"vol1.mokuro": make_mokuro(["001.jpg"]), "vol1.cbz": archive}
        service = _service(store)

        first = await service.import_entries(entries(files))
        second = await service.import_entries(entries(files))

        assert first.imported_count == 2
        assert second.imported_count == 0
        assert second.failed_count == 1
        assert second.errors == ['vol1: Volume "Volume 1" already exists']
        assert len(store.volumes) == 2

    async def test_archive_with_internal_sidecar(self, store: InMemoryStore) -> None:
        archive = make_zip(
            {
                "vol1.mokuro": make_mokuro(["001.jpg"]),
                "vol1/001.jpg": b"one",
            }
        )
        result = await _service(store).import_entries(entries({"Series/vol1.cbz": archive}))

        assert result.success is True
        assert result.volume_ids == ["volume-uuid-1"]

    async def test_plain_archive_is_image_only(self, store: InMemoryStore) -> None:
        archive = make_zip({"001.jpg": b"one", "002.jpg": b"two"})
        result = await _service(store).import_entries(
            entries({"My Series/Volume 02.cbz": archive})
        )

        assert result.imported_count == 1
        stored = store.volumes[result.volume_ids[0]]
        assert stored.metadata.image_only is True
        assert stored.metadata.series_name == "My Series"
        assert stored.metadata.volume_name == "Volume 02"

    async def test_archive_without_volumes_fails(self, store: InMemoryStore) -> None:
        archive = make_zip({"readme.txt": b"hello"})
        result = await _service(store).import_entries(entries({"empty.zip": archive}))

        assert result.success is False
        assert result.errors == [f"empty: {EMPTY_ARCHIVE_MESSAGE}"]
        assert volumes_failed_total.labels(reason="archive")._value.get() == 1

    async def test_corrupt_archive_fails(self, store: InMemoryStore) -> None:
        result = await _service(store).import_entries(entries({"broken.cbz": b"not a zip"}))

        assert result.failed_count == 1
        assert result.errors[0].startswith("broken: Could not read archive broken.cbz")


class TestNestedArchives:
    """Archives inside archives are unwound depth-first."""

    @staticmethod
    def _catalog() -> bytes:
        return make_zip(
            {
                "Series A/Series A Vol 1.cbz": make_zip({"001.jpg": b"a1"}),
                "Series A/Series A Vol 2.cbz": make_zip({"001.jpg": b"a2"}),
            }
        )

    async def test_nested_archives_are_imported(self, store: InMemoryStore) -> None:
        """Nested archives are named from their own file name, not their folder."""
        result = await _service(store).import_entries(entries({"catalog.zip": self._catalog()}))

        assert result.success is True
        assert result.imported_count == 2
        names = sorted(
            (v.metadata.series_name, v.metadata.volume_name) for v in store.volumes.values()
        )
        assert names == [("Series A", "Series A Vol 1"), ("Series A", "Series A Vol 2")]

    async def test_nesting_depth_limit(self, store: InMemoryStore) -> None:
        """Archives past the depth limit are skipped with a warning."""
        result = await _service(store, max_nesting_depth=0).import_entries(
            entries({"catalog.zip": self._catalog()})
        )

        assert result.success is True
        assert result.imported_count == 0
        assert result.skipped_count == 2
        assert all("nested more than 0 levels deep" in w for w in result.warnings)


class TestConcurrency:
    async def test_results_keep_pairing_order(self) -> None:
        """Queued items run concurrently but report in pairing order."""
        store = InMemoryStore(delay=0.01)
        files: dict[str, bytes] = {}
        for number in range(1, 6):
            files.update(
                _volume_files(
                    f"vol{number}",
                    volume=f"Volume {number}",
                    volume_uuid=f"volume-uuid-{number}",
                )
            )

        result = await _service(store, import_concurrency=2).import_entries(entries(files))

        assert result.imported_count == 5
        assert result.volume_ids == [f"volume-uuid-{n}" for n in range(1, 6)]
