"""
Ground-truth extractor — measurable facts about an image, no guessing.

Sub-measurements (clustering, sharpness, noise, unique colors) are pure
functions over the same read-only buffer, so they fan out to worker threads
and each one is bounded by a timeout. A measurement that fails or times out
lowers the confidence of the analysis instead of failing it.
"""

from __future__ import annotations

import asyncio
import math
from typing import Any, Callable

from PIL import Image

from app.core.config import settings
from app.core.log import logger
from app.pixels import (
    DecodedImage,
    ImageLoadError,
    decode_image,
    dominant_colors,
    noise_score,
    sharpness_score,
    to_rgba_array,
    unique_color_count,
)
from app.schema.analysis import DominantColor, ImageAnalysis

__all__ = ("analyze_decoded", "extract_ground_truth", "snap_aspect_ratio")

# Upper bound on confidence when a given measurement could not be completed
_CONFIDENCE_CAPS: dict[str, float] = {
    "dpi": 95.0,
    "colors": 85.0,
    "unique_colors": 85.0,
    "sharpness": 90.0,
    "noise": 90.0,
}

_COMMON_RATIOS: dict[str, float] = {
    "1:1": 1.0,
    "5:4": 5 / 4,
    "4:5": 4 / 5,
    "4:3": 4 / 3,
    "3:4": 3 / 4,
    "3:2": 3 / 2,
    "2:3": 2 / 3,
    "16:9": 16 / 9,
    "9:16": 9 / 16,
    "2:1": 2.0,
    "1:2": 0.5,
    "21:9": 21 / 9,
}


async def extract_ground_truth(content: bytes) -> ImageAnalysis:
    """Analyze raw image bytes. Undecodable input yields a zero-confidence analysis."""
    try:
        decoded = await asyncio.to_thread(decode_image, content)
    except ImageLoadError as exc:
        logger.warning(f"Ground truth: {exc}")
        return ImageAnalysis.unmeasurable(file_size_bytes=len(content))
    return await analyze_decoded(decoded)


async def analyze_decoded(decoded: DecodedImage) -> ImageAnalysis:
    image = decoded.image
    width, height = image.width, image.height

    # Alpha facts come from the full-resolution image via the histogram
    alpha_hist = image.getchannel("A").histogram()
    total = width * height
    translucent = total - alpha_hist[255]

    view, downsampled = _bounded_view(image)
    rgba = to_rgba_array(view)

    sharpness, noise, clusters, unique = await asyncio.gather(
        _measure("sharpness", sharpness_score, rgba),
        _measure("noise", noise_score, rgba),
        _measure("colors", dominant_colors, rgba, settings.DOMINANT_COLOR_COUNT),
        _measure("unique_colors", unique_color_count, rgba),
    )

    failed: list[str] = []
    if decoded.dpi is None:
        failed.append("dpi")
    for name, value in (("sharpness", sharpness), ("noise", noise), ("colors", clusters), ("unique_colors", unique)):
        if value is None:
            failed.append(name)

    confidence = 100.0
    for name in failed:
        confidence = min(confidence, _CONFIDENCE_CAPS[name])

    dpi = decoded.dpi or settings.DEFAULT_DPI
    print_w, print_h = width / dpi, height / dpi
    is_print_ready = (
        dpi >= settings.PRINT_DPI
        and print_w >= settings.MIN_PRINT_INCHES
        and print_h >= settings.MIN_PRINT_INCHES
        and sharpness is not None
        and sharpness >= settings.MIN_PRINT_SHARPNESS
    )

    return ImageAnalysis(
        width=width,
        height=height,
        dpi_estimate=dpi,
        dpi_estimated=decoded.dpi is None,
        format=decoded.format,
        file_size_bytes=decoded.file_size_bytes,
        has_transparency=translucent > 0,
        transparent_pct=translucent / total * 100 if total else 0.0,
        dominant_colors=tuple(
            DominantColor(rgb=c.rgb, hex=c.hex, percentage=min(100.0, c.percentage), name=c.name)
            for c in clusters or ()
        ),
        unique_color_count=unique or 0,
        sharpness_score=round(sharpness or 0.0, 2),
        noise_score=round(noise or 0.0, 2),
        is_print_ready=is_print_ready,
        aspect_ratio=snap_aspect_ratio(width, height),
        print_size_inches=(round(print_w, 2), round(print_h, 2)),
        downsampled=downsampled,
        failed_measurements=tuple(failed),
        confidence=confidence,
    )


def _bounded_view(image: Image.Image) -> tuple[Image.Image, bool]:
    pixels = image.width * image.height
    if pixels <= settings.ANALYSIS_MAX_PIXELS:
        return image, False
    scale = math.sqrt(settings.ANALYSIS_MAX_PIXELS / pixels)
    size = (max(1, int(image.width * scale)), max(1, int(image.height * scale)))
    logger.debug(f"Ground truth: downsampling {image.width}x{image.height} to {size[0]}x{size[1]}")
    return image.resize(size, Image.Resampling.BOX), True


async def _measure(name: str, fn: Callable[..., Any], *args: Any) -> Any:
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(fn, *args),
            timeout=settings.ANALYSIS_STEP_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        logger.warning(f"Ground truth: {name} timed out after {settings.ANALYSIS_STEP_TIMEOUT_SECONDS}s")
    except Exception as exc:
        logger.warning(f"Ground truth: {name} failed ({type(exc).__name__}: {exc})")
    return None


def snap_aspect_ratio(width: int, height: int) -> str:
    """Name the nearest common ratio within 2%, otherwise ``"<r>:1"``."""
    if width <= 0 or height <= 0:
        return ""
    ratio = width / height
    name, target = min(_COMMON_RATIOS.items(), key=lambda item: abs(item[1] - ratio))
    if abs(target - ratio) / target <= 0.02:
        return name
    return f"{ratio:.2f}:1"
