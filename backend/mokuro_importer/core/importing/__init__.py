"""Volume import pipeline: pairing, matching, processing and batch orchestration."""

from mokuro_importer.core.importing.archives import ZipDecompressor
from mokuro_importer.core.importing.images import PillowThumbnailer
from mokuro_importer.core.importing.local import LocalFolderProvider
from mokuro_importer.core.importing.matching import match_images_to_pages
from mokuro_importer.core.importing.pairing import pair_sources
from mokuro_importer.core.importing.processing import process_volume
from mokuro_importer.core.importing.routing import decide_import_routing
from mokuro_importer.core.importing.service import ImportService

__all__ = [
    "ImportService",
    "LocalFolderProvider",
    "PillowThumbnailer",
    "ZipDecompressor",
    "decide_import_routing",
    "match_images_to_pages",
    "pair_sources",
    "process_volume",
]
