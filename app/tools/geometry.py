"""
Geometry tools — upscale, rotate / flip, auto crop.
"""

from __future__ import annotations

import asyncio
from typing import Any

import numpy as np
from PIL import Image

from app.pixels import color_distance, hex_to_rgb, to_rgba_array
from app.tools.base import ToolError, ToolOutput

__all__ = ("auto_crop", "rotate_flip", "upscaler")

_NAMED_BACKGROUNDS: dict[str, tuple[int, int, int]] = {
    "white": (255, 255, 255),
    "black": (0, 0, 0),
}


def _upscale(image: Image.Image, params: dict[str, Any]) -> Image.Image:
    factor = float(params["scaleFactor"])
    if factor <= 1:
        raise ToolError(f"scaleFactor must be greater than 1, got {factor}")
    size = (round(image.width * factor), round(image.height * factor))
    return image.resize(size, Image.Resampling.LANCZOS)


async def upscaler(image: Image.Image, params: dict[str, Any]) -> ToolOutput:
    return ToolOutput(image=await asyncio.to_thread(_upscale, image, params))


async def rotate_flip(image: Image.Image, params: dict[str, Any]) -> ToolOutput:
    operation = params.get("operation")
    if operation == "rotate":
        angle = int(params.get("angle", 0)) % 360
        transpose = {
            90: Image.Transpose.ROTATE_270,  # clockwise
            180: Image.Transpose.ROTATE_180,
            270: Image.Transpose.ROTATE_90,
        }.get(angle)
    elif operation == "flip":
        transpose = {
            "horizontal": Image.Transpose.FLIP_LEFT_RIGHT,
            "vertical": Image.Transpose.FLIP_TOP_BOTTOM,
        }.get(params.get("direction", ""))
    else:
        transpose = None
    if transpose is None:
        raise ToolError(f"Unsupported transform: {params}")
    return ToolOutput(image=image.transpose(transpose))


def _auto_crop(image: Image.Image, params: dict[str, Any]) -> Image.Image:
    rgba = to_rgba_array(image)
    tolerance = float(params.get("tolerance", 30))
    padding = int(params.get("padding", 0))
    background = str(params.get("backgroundColor", "auto")).lower()

    if background == "transparent" or (background == "auto" and rgba[0, 0, 3] < 255):
        content = rgba[..., 3] > tolerance
    else:
        if background == "auto":
            corners = np.array([rgba[0, 0, :3], rgba[0, -1, :3], rgba[-1, 0, :3], rgba[-1, -1, :3]])
            reference = tuple(np.median(corners, axis=0))
        elif background in _NAMED_BACKGROUNDS:
            reference = _NAMED_BACKGROUNDS[background]
        else:
            try:
                reference = hex_to_rgb(background)
            except ValueError as exc:
                raise ToolError(str(exc)) from exc
        content = np.asarray(color_distance(rgba[..., :3], reference)) > tolerance

    rows = np.flatnonzero(content.any(axis=1))
    cols = np.flatnonzero(content.any(axis=0))
    if len(rows) == 0 or len(cols) == 0:
        raise ToolError("Nothing but background found, refusing to crop everything")

    box = (
        max(0, int(cols[0]) - padding),
        max(0, int(rows[0]) - padding),
        min(image.width, int(cols[-1]) + 1 + padding),
        min(image.height, int(rows[-1]) + 1 + padding),
    )
    return image.crop(box)


async def auto_crop(image: Image.Image, params: dict[str, Any]) -> ToolOutput:
    return ToolOutput(image=await asyncio.to_thread(_auto_crop, image, params))
