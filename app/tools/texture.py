"""
Texture cut — punch the image through a procedural pattern mask.
"""

from __future__ import annotations

import asyncio
import math
from typing import Any

import numpy as np
from PIL import Image

from app.pixels import to_rgba_array
from app.tools.base import ToolError, ToolOutput

__all__ = ("texture_cut",)

_BASE_PERIOD = 16.0
_NOISE_SEED = 7


def _pattern(kind: str, width: int, height: int, period: float, rotation: float) -> np.ndarray:
    """Float mask in [0, 1]: 1 keeps the pixel, 0 cuts it."""
    ys, xs = np.mgrid[0:height, 0:width].astype(np.float64)
    theta = math.radians(rotation)
    u = xs * math.cos(theta) + ys * math.sin(theta)
    v = -xs * math.sin(theta) + ys * math.cos(theta)
    fu = np.mod(u, period) / period
    fv = np.mod(v, period) / period

    if kind == "dots":
        return (np.hypot(fu - 0.5, fv - 0.5) > 0.3).astype(np.float64)
    if kind == "lines":
        return (fv >= 0.5).astype(np.float64)
    if kind == "grid":
        return ((fu >= 0.2) & (fv >= 0.2)).astype(np.float64)
    if kind == "noise":
        rng = np.random.default_rng(_NOISE_SEED)
        cells = rng.random((int(height / period) + 2, int(width / period) + 2))
        return (cells[(ys / period).astype(int), (xs / period).astype(int)] >= 0.5).astype(np.float64)
    raise ToolError(f"Unsupported texture: {kind}")


def _texture_cut(image: Image.Image, params: dict[str, Any]) -> Image.Image:
    kind = params.get("textureType")
    if kind == "custom":
        raise ToolError("Custom textures need an uploaded texture image")

    rgba = to_rgba_array(image).astype(np.float64)
    h, w = rgba.shape[:2]
    scale = float(params.get("scale", 1.0))
    period = _BASE_PERIOD * scale if params.get("tile", True) else max(w, h) / 2
    mask = _pattern(str(kind), w, h, max(2.0, period), float(params.get("rotation", 0)))
    if params.get("invert", False):
        mask = 1.0 - mask

    amount = float(params.get("amount", 1.0))
    out = rgba.copy()
    out[..., 3] = rgba[..., 3] * (1.0 - amount * (1.0 - mask))
    return Image.fromarray(np.round(out).astype(np.uint8), "RGBA")


async def texture_cut(image: Image.Image, params: dict[str, Any]) -> ToolOutput:
    return ToolOutput(image=await asyncio.to_thread(_texture_cut, image, params))
