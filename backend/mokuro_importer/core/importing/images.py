"""Pillow-backed image helpers: placeholder pages and thumbnails."""

from __future__ import annotations

import asyncio
from io import BytesIO
from typing import Protocol

import structlog
from PIL import Image, ImageDraw, ImageFont

from mokuro_importer.core.importing.models import Thumbnail

logger = structlog.get_logger("mokuro_importer.importing.images")

DEFAULT_PLACEHOLDER_WIDTH = 800
DEFAULT_PLACEHOLDER_HEIGHT = 1200
DEFAULT_THUMBNAIL_SIZE = (250, 350)

PLACEHOLDER_BACKGROUND = (236, 236, 236)
PLACEHOLDER_BORDER = (200, 60, 60)
PLACEHOLDER_TEXT = (90, 90, 90)
PLACEHOLDER_LABEL = "File Missing"

_MAX_LABEL_CHARS = 40


class Thumbnailer(Protocol):
    """Produces a small cover image from the bytes of a full page."""

    async def generate(self, image_data: bytes) -> Thumbnail: ...


def _truncate(text: str, limit: int = _MAX_LABEL_CHARS) -> str:
    if len(text) <= limit:
        return text
    return "..." + text[-(limit - 3) :]


def create_placeholder_image(
    label: str,
    width: int | None = None,
    height: int | None = None,
) -> bytes:
    """Render a PNG that stands in for a page whose image is missing.

    Args:
        label: Path of the missing file, printed under the marker text
        width: Page width; defaults to 800 when unknown or invalid
        height: Page height; defaults to 1200 when unknown or invalid

    Returns:
        PNG bytes
    """
    width = width if width and width > 0 else DEFAULT_PLACEHOLDER_WIDTH
    height = height if height and height > 0 else DEFAULT_PLACEHOLDER_HEIGHT

    img = Image.new("RGB", (width, height), color=PLACEHOLDER_BACKGROUND)
    draw = ImageDraw.Draw(img)

    border = max(2, min(width, height) // 100)
    draw.rectangle((0, 0, width - 1, height - 1), outline=PLACEHOLDER_BORDER, width=border)
    draw.line((0, 0, width - 1, height - 1), fill=PLACEHOLDER_BORDER, width=border)
    draw.line((0, height - 1, width - 1, 0), fill=PLACEHOLDER_BORDER, width=border)

    font_size = max(12, min(width, height) // 16)
    font = ImageFont.load_default(size=font_size)

    for text, offset in ((PLACEHOLDER_LABEL, -font_size), (_truncate(label), font_size)):
        left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
        position = ((width - (right - left)) // 2, (height - (bottom - top)) // 2 + offset)
        draw.text(position, text, fill=PLACEHOLDER_TEXT, font=font)

    buffer = BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def _render_thumbnail(image_data: bytes, size: tuple[int, int]) -> Thumbnail:
    with Image.open(BytesIO(image_data)) as img:
        if img.mode not in ("RGB", "L"):
            img = img.convert("RGB")
        thumbnail_img = img.copy()
        thumbnail_img.thumbnail(size, Image.Resampling.LANCZOS)

        buffer = BytesIO()
        thumbnail_img.save(buffer, format="JPEG", quality=85)
        return Thumbnail(
            data=buffer.getvalue(),
            width=thumbnail_img.width,
            height=thumbnail_img.height,
        )


class PillowThumbnailer:
    """Default thumbnailer: JPEG scaled to fit a bounding box, off the event loop."""

    def __init__(self, size: tuple[int, int] = DEFAULT_THUMBNAIL_SIZE) -> None:
        self.size = size

    async def generate(self, image_data: bytes) -> Thumbnail:
        return await asyncio.to_thread(_render_thumbnail, image_data, self.size)
