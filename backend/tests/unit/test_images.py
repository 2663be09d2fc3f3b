"""Tests for placeholder and thumbnail rendering."""

from __future__ import annotations

import io

import pytest
from PIL import Image, UnidentifiedImageError

from mokuro_importer.core.importing.images import (
    DEFAULT_PLACEHOLDER_HEIGHT,
    DEFAULT_PLACEHOLDER_WIDTH,
    PillowThumbnailer,
    create_placeholder_image,
)
from tests.factories import make_image_bytes


def test_placeholder_is_png_of_requested_size() -> None:
    """The placeholder has the declared page size."""
    data = create_placeholder_image("vol/002.jpg", 320, 480)

    with Image.open(io.BytesIO(data)) as img:
        assert img.format == "PNG"
        assert img.size == (320, 480)


@pytest.mark.parametrize(("width", "height"), [(None, None), (0, -5)])
def test_placeholder_falls_back_to_default_size(width: int | None, height: int | None) -> None:
    """Unknown or invalid dimensions use 800x1200."""
    data = create_placeholder_image("missing.jpg", width, height)

    with Image.open(io.BytesIO(data)) as img:
        assert img.size == (DEFAULT_PLACEHOLDER_WIDTH, DEFAULT_PLACEHOLDER_HEIGHT)


def test_placeholder_handles_long_labels() -> None:
    """Very long paths are truncated instead of failing to render."""
    data = create_placeholder_image("a/" * 200 + "page.jpg", 50, 50)

    with Image.open(io.BytesIO(data)) as img:
        assert img.size == (50, 50)


async def test_thumbnail_fits_bounding_box() -> None:
    """Large pages shrink to fit while keeping their aspect ratio."""
    thumbnailer = PillowThumbnailer((250, 350))

    thumbnail = await thumbnailer.generate(make_image_bytes(1000, 1400))

    assert (thumbnail.width, thumbnail.height) == (250, 350)
    with Image.open(io.BytesIO(thumbnail.data)) as img:
        assert img.format == "JPEG"
        assert img.size == (250, 350)


async def test_thumbnail_converts_transparent_images() -> None:
    """RGBA pages are flattened so they can be saved as JPEG."""
    buffer = io.BytesIO()
    Image.new("RGBA", (100, 100), color=(0, 0, 0, 0)).save(buffer, format="PNG")

    thumbnail = await PillowThumbnailer((50, 50)).generate(buffer.getvalue())

    assert (thumbnail.width, thumbnail.height) == (50, 50)


async def test_thumbnail_of_garbage_raises() -> None:
    """Undecodable bytes raise, the caller decides what to do."""
    with pytest.raises(UnidentifiedImageError):
        await PillowThumbnailer().generate(b"definitely not an image")
