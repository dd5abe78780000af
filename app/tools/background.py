"""
Reference background remover.

Production deployments swap this for a segmentation model behind the same
``execute(image, params)`` contract; this one flood-fills the border-connected
region whose color matches the border median.
"""

from __future__ import annotations

import asyncio
from typing import Any

import numpy as np
from PIL import Image, ImageDraw

from app.pixels import color_distance, hex_to_rgb, to_rgba_array
from app.tools.base import ToolError, ToolOutput

__all__ = ("background_remover",)

_MATCH_DISTANCE = 60.0
_MARKED = 128


def _border_pixels(width: int, height: int):
    for x in range(width):
        yield x, 0
        yield x, height - 1
    for y in range(1, height - 1):
        yield 0, y
        yield width - 1, y


def _remove_background(image: Image.Image, params: dict[str, Any]) -> Image.Image:
    rgba = to_rgba_array(image)
    h, w = rgba.shape[:2]
    border = np.concatenate([rgba[0], rgba[-1], rgba[:, 0], rgba[:, -1]])[:, :3]
    reference = np.median(border, axis=0)

    candidate = np.asarray(color_distance(rgba[..., :3], reference)) <= _MATCH_DISTANCE
    candidate &= rgba[..., 3] > 0
    mask = Image.fromarray((candidate * 255).astype(np.uint8), "L")
    for xy in _border_pixels(w, h):
        if mask.getpixel(xy) == 255:
            ImageDraw.floodfill(mask, xy, _MARKED)
    background = np.asarray(mask) == _MARKED
    if not background.any():
        raise ToolError("No background region connected to the image border")

    out = rgba.copy()
    fill = params.get("backgroundColor")
    if fill:
        try:
            out[background, :3] = hex_to_rgb(fill)
        except ValueError as exc:
            raise ToolError(str(exc)) from exc
        out[background, 3] = 255
    else:
        out[background, 3] = 0
    return Image.fromarray(out, "RGBA")


async def background_remover(image: Image.Image, params: dict[str, Any]) -> ToolOutput:
    return ToolOutput(image=await asyncio.to_thread(_remove_background, image, params))
