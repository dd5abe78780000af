"""
Result validator: did the tool actually change the pixels the way it should?

Compares the before and after buffers pixel by pixel, applies the tool
family's pass/fail policy and derives a quality score from the after-image's
own ground truth. Every expected failure (undecodable output, dimension
mismatch, out-of-band change) is a failed ``ResultValidation``, never an
exception.
"""

from __future__ import annotations

import asyncio
import dataclasses
from typing import Any

from PIL import Image

from app.analysis.ground_truth import analyze_decoded
from app.core.config import settings
from app.core.log import logger
from app.pixels import (
    DecodedImage,
    ImageLoadError,
    PixelDiff,
    dark_share,
    decode_image,
    diff_pixels,
    to_rgba_array,
)
from app.schema.analysis import ImageAnalysis
from app.schema.result import ResultValidation
from app.schema.tool import ToolFamily, ToolSpec
from app.tools.catalog import TOOL_CATALOG

__all__ = ("ResultValidator",)

# Quality adjustments (bounded penalties and bonuses)
SHARPNESS_DROP = 10.0
SHARPNESS_PENALTY = 15.0
NOISE_RISE = 10.0
NOISE_PENALTY = 10.0
PRINT_READY_BONUS = 10.0
TRANSPARENCY_BONUS = 5.0
NO_CHANGE_PCT = 0.1
NO_CHANGE_PENALTY = 20.0
RECOLOR_MIN_SHIFT = 20.0  # mean RGB distance of recolored pixels


class ResultValidator:
    def __init__(self, catalog: dict[str, ToolSpec] | None = None, threshold: float | None = None):
        self.catalog = TOOL_CATALOG if catalog is None else catalog
        self.threshold = settings.CHANGE_THRESHOLD if threshold is None else threshold

    async def validate(
        self,
        tool_name: str,
        before: Image.Image,
        after: bytes | None,
        parameters: dict[str, Any] | None = None,
        before_analysis: ImageAnalysis | None = None,
    ) -> ResultValidation:
        """
        Verify one executed call. *after* is the encoded output image, or
        None for info-only tools that leave the image untouched.
        """
        parameters = parameters or {}
        spec = self.catalog.get(tool_name)
        if spec is None:
            return ResultValidation(success=False, failure_reason=f"Unknown tool: {tool_name}")

        try:
            before_decoded = DecodedImage(
                image=before if before.mode == "RGBA" else before.convert("RGBA"),
                format=before_analysis.format if before_analysis else "png",
                file_size_bytes=before_analysis.file_size_bytes if before_analysis else 0,
                dpi=_known_dpi(before_analysis),
            )
            if before_analysis is None:
                before_analysis = await analyze_decoded(before_decoded)

            if after is None:
                if spec.mutates_image:
                    return ResultValidation(success=False, failure_reason=f"{tool_name} returned no image")
                return ResultValidation(
                    success=True,
                    quality_score=before_analysis.confidence,
                    after_analysis=before_analysis,
                )

            after_decoded = await asyncio.to_thread(decode_image, after)
            if after_decoded.dpi is None:
                after_decoded = dataclasses.replace(after_decoded, dpi=before_decoded.dpi)

            diff, after_analysis = await asyncio.gather(
                asyncio.to_thread(
                    diff_pixels,
                    to_rgba_array(before_decoded.image),
                    to_rgba_array(after_decoded.image),
                    self.threshold,
                ),
                analyze_decoded(after_decoded),
            )
            removed_pct = None
            if spec.family == ToolFamily.color_removal and parameters.get("replaceMode") == "mask":
                # Every pixel of a mask is repainted, only the black ones were removed
                removed_pct = await asyncio.to_thread(dark_share, to_rgba_array(after_decoded.image))
        except ImageLoadError as exc:
            logger.warning(f"Result check for {tool_name}: {exc}")
            return ResultValidation(success=False, failure_reason=f"Output could not be loaded: {exc}")
        except Exception as exc:
            logger.exception(f"Result check for {tool_name} failed: {exc}")
            return ResultValidation(success=False, failure_reason=f"Result check failed: {exc}")

        return _judge(spec, parameters, diff, before_analysis, after_analysis, removed_pct)


def _known_dpi(analysis: ImageAnalysis | None) -> int | None:
    if analysis is None or analysis.dpi_estimated:
        return None
    return analysis.dpi_estimate


def _expects_transparency(spec: ToolSpec, parameters: dict[str, Any]) -> bool:
    if not spec.must_add_transparency:
        return False
    if spec.family == ToolFamily.color_removal:
        return parameters.get("replaceMode", "transparency") == "transparency"
    return not parameters.get("backgroundColor")


def _judge(
    spec: ToolSpec,
    parameters: dict[str, Any],
    diff: PixelDiff,
    before: ImageAnalysis,
    after: ImageAnalysis,
    removed_pct: float | None = None,
) -> ResultValidation:
    pct = diff.percentage_changed
    removed = pct if removed_pct is None else removed_pct
    dimensions_changed = not diff.dimensions_match
    new_transparency = max(0.0, after.transparent_pct - before.transparent_pct)
    expects_alpha = _expects_transparency(spec, parameters)
    warnings: list[str] = []
    failure: str | None = None
    verdict: str | None = None

    family = spec.family
    if spec.must_keep_dimensions and dimensions_changed:
        failure = f"{spec.name} changed the image dimensions ({before.width}x{before.height} -> {after.width}x{after.height})"
    elif spec.must_grow_dimensions and (after.width <= before.width or after.height <= before.height):
        failure = f"Output {after.width}x{after.height} is not larger than input {before.width}x{before.height}"
    elif family == ToolFamily.color_removal:
        if expects_alpha and new_transparency <= 0:
            failure = "No new transparency was produced"
            verdict = "too_little"
        elif removed > spec.max_change_pct:
            failure = f"{removed:.1f}% of the image was removed, more than the {spec.max_change_pct:g}% limit"
            verdict = "too_much"
        elif removed < spec.min_change_pct:
            failure = f"Only {removed:.2f}% of the image was removed"
            verdict = "too_little"
    elif family == ToolFamily.recolor:
        if pct < spec.min_change_pct:
            failure = f"Only {pct:.2f}% of the image changed, no visible recolor"
            verdict = "too_little"
        elif pct > spec.max_change_pct:
            warnings.append(f"{pct:.1f}% of the image changed, nearly everything was recolored")
        if diff.pixels_changed and diff.color_shift < RECOLOR_MIN_SHIFT:
            warnings.append(f"Recolored pixels moved only {diff.color_shift:.0f} on average, the change may be hard to see")
    elif family == ToolFamily.background_removal:
        if expects_alpha and not after.has_transparency:
            failure = "Output has no transparency"
        elif not spec.min_change_pct <= pct <= spec.max_change_pct:
            failure = f"{pct:.1f}% of the image changed, expected {spec.min_change_pct:g}-{spec.max_change_pct:g}%"
    elif family == ToolFamily.texture_mask:
        if not spec.min_change_pct <= pct <= spec.max_change_pct:
            warnings.append(f"{pct:.1f}% of the image changed, outside the usual {spec.min_change_pct:g}-{spec.max_change_pct:g}%")
    elif family == ToolFamily.geometry:
        if diff.pixels_changed == 0 and not dimensions_changed:
            if spec.name == "rotate_flip":
                failure = "Rotation/flip had no visible effect"
            else:
                warnings.append(f"{spec.name} left the image unchanged")

    quality = after.confidence
    if before.sharpness_score - after.sharpness_score > SHARPNESS_DROP:
        quality -= SHARPNESS_PENALTY
        warnings.append(f"Sharpness dropped from {before.sharpness_score:.0f} to {after.sharpness_score:.0f}")
    if after.noise_score - before.noise_score > NOISE_RISE:
        quality -= NOISE_PENALTY
        warnings.append(f"Noise rose from {before.noise_score:.0f} to {after.noise_score:.0f}")
    if after.is_print_ready and not before.is_print_ready:
        quality += PRINT_READY_BONUS
    if expects_alpha and new_transparency > 0:
        quality += TRANSPARENCY_BONUS
    if spec.mutates_image and pct < NO_CHANGE_PCT:
        quality -= NO_CHANGE_PENALTY
        warnings.append("No measurable change")

    return ResultValidation(
        success=failure is None,
        pixels_changed=diff.pixels_changed,
        percentage_changed=round(min(100.0, pct), 2),
        quality_score=round(max(0.0, min(100.0, quality)), 1),
        max_delta=round(diff.max_delta, 2),
        avg_delta=round(diff.avg_delta, 2),
        dimensions_changed=dimensions_changed,
        new_transparency_pct=round(new_transparency, 2),
        removed_pct=round(removed_pct, 2) if removed_pct is not None else None,
        warnings=warnings,
        failure_reason=failure,
        change_verdict=verdict if failure else None,
        after_analysis=after,
    )
