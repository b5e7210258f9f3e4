"""
image_compressor.py — shrink an image before it is embedded in a message.

The longer edge is clamped to 800 px, the shorter edge scaled to keep the
aspect ratio, and the result is always re-encoded as JPEG at quality 80.
Output bytes differ between Pillow builds, so callers (and tests) should
rely on the dimensions and format only.
"""
from __future__ import annotations

import asyncio
import io
import logging
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from chat_models import Attachment, make_data_url

logger = logging.getLogger(__name__)

MAX_EDGE = 800
JPEG_QUALITY = 80
OUTPUT_TYPE = "image/jpeg"


class ImageCompressionError(ValueError):
    """The image could not be decoded; no attachment must be created for it."""


@dataclass(frozen=True)
class CompressedImage:
    data: bytes
    width: int
    height: int
    content_type: str = OUTPUT_TYPE


def target_size(width: int, height: int, max_edge: int = MAX_EDGE) -> tuple[int, int]:
    """Clamp the longer edge to max_edge; images already within bounds keep their size."""
    if width > height:
        if width > max_edge:
            height = height * max_edge / width
            width = max_edge
    elif height > max_edge:
        width = width * max_edge / height
        height = max_edge
    return max(1, int(width)), max(1, int(height))


def compress_image(data: bytes) -> CompressedImage:
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            size = target_size(*img.size)
            if img.mode != "RGB":
                img = img.convert("RGB")
            if size != img.size:
                img = img.resize(size, Image.Resampling.LANCZOS)
            buf = io.BytesIO()
            img.save(buf, format="JPEG", quality=JPEG_QUALITY)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise ImageCompressionError(f"Could not decode image: {exc}") from exc

    logger.debug("Compressed %d bytes → %d bytes (%dx%d)", len(data), buf.tell(), *size)
    return CompressedImage(data=buf.getvalue(), width=size[0], height=size[1])


async def compress_image_async(data: bytes) -> CompressedImage:
    """Run compress_image in a worker thread so the event loop keeps serving."""
    return await asyncio.to_thread(compress_image, data)


def to_attachment(name: str, compressed: CompressedImage) -> Attachment:
    return Attachment(
        name=name,
        content_type=compressed.content_type,
        url=make_data_url(compressed.content_type, compressed.data),
    )
