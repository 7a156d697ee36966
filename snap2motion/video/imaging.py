"""
Image helpers shared by the remote backends and the local renderer

Every helper returns a new blob or image; the caller's source bytes are
never modified.
"""

import base64
import io
import logging
import mimetypes
from typing import Tuple

from PIL import Image, ImageOps

logger = logging.getLogger(__name__)

JPEG_QUALITY = 92


def open_image(data: bytes) -> Image.Image:
    """Decode bytes into an RGB image with EXIF orientation applied"""
    img = Image.open(io.BytesIO(data))
    img = ImageOps.exif_transpose(img)
    return img.convert("RGB")


def fit_within(width: int, height: int, max_side: int) -> Tuple[int, int]:
    """Scale (width, height) so the longest side is at most ``max_side``"""
    scale = min(1.0, max_side / max(width, height))
    return max(1, round(width * scale)), max(1, round(height * scale))


def resize_image(data: bytes, max_side: int) -> bytes:
    """
    Produce a JPEG copy of ``data`` whose longest side is at most ``max_side``.

    Images already small enough are re-encoded at their own size.
    """
    img = open_image(data)
    size = fit_within(img.width, img.height, max_side)
    if size != img.size:
        img = img.resize(size, Image.LANCZOS)
        logger.debug(f"Resized input image to {size[0]}x{size[1]}")

    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=JPEG_QUALITY)
    return buf.getvalue()


def guess_mime_type(name: str, default: str = "image/jpeg") -> str:
    mime, _ = mimetypes.guess_type(name or "")
    return mime or default


def to_data_uri(data: bytes, name: str = "") -> str:
    """Encode image bytes as a ``data:`` URI"""
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{guess_mime_type(name)};base64,{encoded}"
