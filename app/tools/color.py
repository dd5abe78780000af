"""
Color tools — knockout, recolor, palette extraction, color picking.
"""

from __future__ import annotations

import asyncio
from typing import Any

import numpy as np
from PIL import Image

from app.pixels import color_distance, color_name, dominant_colors, hex_to_rgb, rgb_to_hex, to_rgba_array
from app.tools.base import ToolError, ToolOutput, tolerance_to_distance

__all__ = (
    "color_knockout",
    "extract_color_palette",
    "pick_color_at_position",
    "recolor_image",
)


# ── Knockout ─────────────────────────────────────────────────────────────


def _knockout(image: Image.Image, params: dict[str, Any]) -> Image.Image:
    colors = params.get("colors") or []
    if not colors:
        raise ToolError("No colors to remove")

    rgba = to_rgba_array(image).astype(np.float64)
    radius = tolerance_to_distance(params.get("tolerance", 30))
    feather = float(params.get("feather", 0))
    band = feather * 4 if feather > 0 else (8.0 if params.get("antiAliasing", True) else 0.0)

    # keep = 0 fully removed, 1 untouched
    keep = np.ones(rgba.shape[:2])
    for color in colors:
        target = (color["r"], color["g"], color["b"])
        dist = np.asarray(color_distance(rgba[..., :3], target))
        if band > 0:
            keep = np.minimum(keep, np.clip((dist - radius) / band, 0.0, 1.0))
        else:
            keep = np.minimum(keep, (dist > radius).astype(np.float64))

    mode = params.get("replaceMode", "transparency")
    out = rgba.copy()
    if mode == "transparency":
        out[..., 3] = rgba[..., 3] * keep
    elif mode == "color":
        out[..., :3] = rgba[..., :3] * keep[..., None] + 255.0 * (1 - keep[..., None])
    elif mode == "mask":
        value = keep * 255.0
        out[..., 0] = out[..., 1] = out[..., 2] = value
        out[..., 3] = 255.0
    else:
        raise ToolError(f"Unknown replaceMode: {mode}")
    return Image.fromarray(np.round(out).astype(np.uint8), "RGBA")


async def color_knockout(image: Image.Image, params: dict[str, Any]) -> ToolOutput:
    return ToolOutput(image=await asyncio.to_thread(_knockout, image, params))


# ── Recolor ──────────────────────────────────────────────────────────────


def _recolor(image: Image.Image, params: dict[str, Any]) -> Image.Image:
    mappings = params.get("colorMappings") or []
    if not mappings:
        raise ToolError("No color mappings")

    rgba = to_rgba_array(image)
    radius = tolerance_to_distance(params.get("tolerance", 30))
    blend = params.get("blendMode", "replace")

    src = rgba.astype(np.float64)
    out = src.copy()
    for mapping in mappings:
        # originalColor is pinned from the ground-truth palette during validation
        if "originalColor" not in mapping:
            raise ToolError(f"Mapping for palette index {mapping.get('originalIndex')} has no resolved originalColor")
        try:
            original = np.array(hex_to_rgb(mapping["originalColor"]), dtype=np.float64)
            new = np.array(hex_to_rgb(mapping["newColor"]), dtype=np.float64)
        except ValueError as exc:
            raise ToolError(str(exc)) from exc

        mask = np.asarray(color_distance(src[..., :3], original)) <= radius
        pixels = src[mask, :3]
        if blend == "replace":
            # Keep the shading around the cluster center
            recolored = pixels - original + new
        elif blend == "overlay":
            recolored = (pixels + new) / 2
        elif blend == "multiply":
            recolored = pixels * new / 255.0
        else:
            raise ToolError(f"Unknown blendMode: {blend}")
        out[mask, :3] = np.clip(recolored, 0, 255)

    return Image.fromarray(np.round(out).astype(np.uint8), "RGBA")


async def recolor_image(image: Image.Image, params: dict[str, Any]) -> ToolOutput:
    return ToolOutput(image=await asyncio.to_thread(_recolor, image, params))


# ── Info-only ────────────────────────────────────────────────────────────


async def extract_color_palette(image: Image.Image, params: dict[str, Any]) -> ToolOutput:
    size = int(params.get("paletteSize", 9))
    clusters = await asyncio.to_thread(dominant_colors, to_rgba_array(image), size)
    return ToolOutput(
        data={
            "palette": [
                {"index": i, "hex": c.hex, "rgb": list(c.rgb), "percentage": round(c.percentage, 2), "name": c.name}
                for i, c in enumerate(clusters)
            ]
        }
    )


async def pick_color_at_position(image: Image.Image, params: dict[str, Any]) -> ToolOutput:
    x, y = int(params["x"]), int(params["y"])
    if not (0 <= x < image.width and 0 <= y < image.height):
        raise ToolError(f"Position ({x}, {y}) is outside the {image.width}x{image.height} image")
    r, g, b, a = image.convert("RGBA").getpixel((x, y))  # type: ignore[misc]
    return ToolOutput(
        data={"x": x, "y": y, "rgb": [r, g, b], "alpha": a, "hex": rgb_to_hex((r, g, b)), "name": color_name((r, g, b))}
    )
