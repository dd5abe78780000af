"""
Image decoding and encoding at the pixel-library boundary.
"""

from __future__ import annotations

import io
from dataclasses import dataclass

import numpy as np
from PIL import Image, UnidentifiedImageError

__all__ = (
    "DecodedImage",
    "ImageLoadError",
    "decode_image",
    "encode_png",
    "to_rgba_array",
)


class ImageLoadError(Exception):
    """Raised when bytes cannot be turned into a usable image."""


@dataclass(frozen=True)
class DecodedImage:
    image: Image.Image  # RGBA
    format: str  # lowercase container format, e.g. "png"
    file_size_bytes: int
    dpi: int | None  # None when the container carries no resolution

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height


def decode_image(
    content: bytes,
    *,
    max_bytes: int | None = None,
    max_dimension: int | None = None,
) -> DecodedImage:
    """
    Decode *content* fully (so truncated files fail here, not later) and
    normalize to RGBA.
    """
    if not content:
        raise ImageLoadError("Empty image payload")
    if max_bytes is not None and len(content) > max_bytes:
        raise ImageLoadError(f"Image is {len(content)} bytes, limit is {max_bytes}")

    try:
        with Image.open(io.BytesIO(content)) as img:
            img.load()
            fmt = (img.format or "unknown").lower()
            dpi = _read_dpi(img.info)
            rgba = img.convert("RGBA")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, SyntaxError) as exc:
        raise ImageLoadError(f"Cannot decode image: {exc}") from exc

    if rgba.width == 0 or rgba.height == 0:
        raise ImageLoadError("Image has no pixels")
    if max_dimension is not None and max(rgba.width, rgba.height) > max_dimension:
        raise ImageLoadError(
            f"Image is {rgba.width}x{rgba.height}, the largest side may be at most {max_dimension}px"
        )

    return DecodedImage(image=rgba, format="jpeg" if fmt == "jpg" else fmt, file_size_bytes=len(content), dpi=dpi)


def _read_dpi(info: dict) -> int | None:
    dpi = info.get("dpi")
    if not dpi:
        return None
    try:
        value = round(float(dpi[0]))
    except (TypeError, ValueError, IndexError):
        return None
    # Pillow reports 1 (or 0) when a JFIF header has no real density
    return value if value > 1 else None


def to_rgba_array(image: Image.Image) -> np.ndarray:
    """``(H, W, 4)`` uint8 view of *image*."""
    if image.mode != "RGBA":
        image = image.convert("RGBA")
    return np.asarray(image, dtype=np.uint8)


def encode_png(image: Image.Image) -> bytes:
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()
