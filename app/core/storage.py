"""
Local disk storage for image handles.

A handle is ``<ULID>.<format>``; it names one immutable image file under
``STORAGE_DIR/images``. Edits never overwrite a handle, they create a new
one, so rolling back is just pointing at an older handle.
"""

import base64
import binascii
import os
import re
from pathlib import Path

import aiofiles
from ulid import ULID

from app.core.config import settings
from app.pixels import ImageLoadError

__all__ = (
    "get_image_path",
    "is_image_handle",
    "load_image",
    "read_image_payload",
    "save_image",
)

_HANDLE_RE = re.compile(r"^[0-9A-HJKMNP-TV-Z]{26}\.(png|jpeg|webp|gif)$")
_DATA_URL_RE = re.compile(r"^data:image/[\w.+-]+;base64,", re.IGNORECASE)

MEDIA_TYPES = {
    "png": "image/png",
    "jpeg": "image/jpeg",
    "webp": "image/webp",
    "gif": "image/gif",
}


def get_images_dir() -> Path:
    return Path(settings.STORAGE_DIR) / "images"


def is_image_handle(value: str) -> bool:
    return bool(_HANDLE_RE.match(value))


def get_image_path(handle: str) -> Path:
    """Resolve a handle to its file; rejects anything that is not a handle."""
    if not is_image_handle(handle):
        raise ImageLoadError(f"Invalid image handle: {handle!r}")
    return get_images_dir() / handle


async def save_image(content: bytes, fmt: str = "png") -> str:
    """Store image bytes and return the new handle."""
    fmt = fmt if fmt in MEDIA_TYPES else "png"
    handle = f"{ULID()}.{fmt}"
    images_dir = get_images_dir()
    os.makedirs(images_dir, exist_ok=True)
    async with aiofiles.open(images_dir / handle, "wb") as f:
        await f.write(content)
    return handle


async def load_image(handle: str) -> bytes:
    path = get_image_path(handle)
    try:
        async with aiofiles.open(path, "rb") as f:
            return await f.read()
    except FileNotFoundError as exc:
        raise ImageLoadError(f"Unknown image handle: {handle}") from exc


async def read_image_payload(image: str) -> bytes:
    """
    Bytes for a turn request's ``image`` field: a stored handle, a data URL
    or bare base64.
    """
    image = image.strip()
    if is_image_handle(image):
        return await load_image(image)
    payload = _DATA_URL_RE.sub("", image, count=1)
    try:
        content = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ImageLoadError("Image is neither a stored handle nor valid base64") from exc
    if len(content) > settings.MAX_IMAGE_BYTES:
        raise ImageLoadError(f"Image is {len(content)} bytes, limit is {settings.MAX_IMAGE_BYTES}")
    return content
