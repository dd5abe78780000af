"""
Pixel-existence and tool-specific plausibility checks.

Each check records findings against a running confidence that can only go
down. Confidence caps below are upper bounds: a finding never raises the
confidence set by an earlier one.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Callable

import numpy as np

from app.core.config import settings
from app.pixels import color_distance, color_presence, delta_e, hex_to_rgb, rgb_to_hex, rgb_to_lab
from app.schema.analysis import ImageAnalysis
from app.tools.base import tolerance_to_distance

__all__ = ("CheckContext", "Findings", "PLAUSIBILITY_CHECKS", "check_color_existence", "resolve_color")


@dataclass
class Findings:
    confidence: float = 100.0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    reasoning: list[str] = field(default_factory=list)
    adjusted: dict[str, Any] = field(default_factory=dict)

    def cap(self, value: float) -> None:
        self.confidence = max(0.0, min(self.confidence, value))

    def error(self, message: str, cap: float = 0.0) -> None:
        self.errors.append(message)
        self.cap(cap)

    def warn(self, message: str, cap: float) -> None:
        self.warnings.append(message)
        self.cap(cap)

    def note(self, message: str) -> None:
        self.reasoning.append(message)

    @property
    def blocked(self) -> bool:
        return bool(self.errors)


def resolve_color(color: dict[str, Any], findings: Findings) -> tuple[int, int, int]:
    """Hex wins when it parses; otherwise fall back to the r/g/b fields."""
    rgb = (int(color["r"]), int(color["g"]), int(color["b"]))
    try:
        from_hex = hex_to_rgb(str(color.get("hex", "")))
    except ValueError:
        findings.warn(f"Invalid hex {color.get('hex')!r}, using rgb{rgb}", 90)
        return rgb
    if from_hex != rgb:
        findings.warn(f"Hex {color['hex']} does not match rgb{rgb}, using the hex value", 90)
    return from_hex


# ── Step 2: pixel existence ──────────────────────────────────────────────


def check_color_existence(
    params: dict[str, Any],
    samples: np.ndarray | None,
    findings: Findings,
) -> tuple[tuple[int, int, int], ...]:
    """Resolve the requested colors and verify each one occurs in *samples*."""
    colors = params.get("colors") or []
    if not colors:
        findings.error("No colors specified for removal")
        return ()
    resolved = tuple(resolve_color(color, findings) for color in colors)
    if samples is None or len(samples) == 0:
        findings.warn("No visible pixels to sample, color presence not verified", 50)
        return resolved

    findings.note(f"Sampled {len(samples)} pixels for color presence")
    for rgb in resolved:
        hex_value = rgb_to_hex(rgb)
        presence = color_presence(samples, rgb, settings.MATCH_DISTANCE)

        if presence.nearest_distance > settings.NOT_FOUND_DISTANCE:
            findings.error(
                f"Color {hex_value} not found in image (closest pixel is {presence.nearest_distance:.0f} away)",
                cap=30,
            )
            continue
        if presence.nearest_distance > settings.WEAK_MATCH_DISTANCE:
            findings.warn(
                f"Color {hex_value} only weakly matches the image (distance {presence.nearest_distance:.0f})",
                70,
            )
        elif presence.match_pct < 1.0:
            findings.warn(f"Color {hex_value} is rare ({presence.match_pct:.2f}% of pixels)", 80)
        findings.note(f"{hex_value}: {presence.match_pct:.1f}% of sampled pixels match")
    return resolved


# ── Step 3: tool plausibility ────────────────────────────────────────────


@dataclass(frozen=True)
class CheckContext:
    analysis: ImageAnalysis
    samples: np.ndarray | None
    colors: tuple[tuple[int, int, int], ...] = ()  # resolved colors from the existence check


def _check_color_knockout(params: dict[str, Any], ctx: CheckContext, findings: Findings) -> None:
    analysis = ctx.analysis
    tolerance = float(params.get("tolerance", 30))

    if analysis.noise_score > 30 and tolerance < 25:
        findings.warn(f"Noisy image (noise {analysis.noise_score:.0f}) with low tolerance {tolerance:.0f} may leave speckles", 75)
    elif analysis.noise_score < 15 and tolerance > 40:
        findings.warn(f"Clean image with high tolerance {tolerance:.0f} may remove similar colors", 80)

    if ctx.samples is not None and len(ctx.samples):
        radius = tolerance_to_distance(tolerance)
        hit = np.zeros(len(ctx.samples), dtype=bool)
        for rgb in ctx.colors:
            hit |= np.asarray(color_distance(ctx.samples, rgb)) <= radius
        coverage = float(hit.mean() * 100)
        findings.note(f"Estimated coverage {coverage:.1f}% at tolerance {tolerance:.0f}")
        if coverage > settings.COVERAGE_MAX_PCT:
            findings.error(
                f"Would remove nearly the whole image ({coverage:.0f}% estimated coverage)",
                cap=20,
            )
        elif coverage < settings.COVERAGE_MIN_PCT and tolerance < 40:
            findings.warn(f"Minimal effect expected ({coverage:.2f}% estimated coverage)", 70)

    if params.get("replaceMode", "transparency") == "transparency" and analysis.format != "png" and not analysis.has_transparency:
        findings.warn(f"{analysis.format.upper()} has no alpha channel, output will be saved as PNG", 85)


def _check_recolor(params: dict[str, Any], ctx: CheckContext, findings: Findings) -> None:
    analysis = ctx.analysis
    mappings = params.get("colorMappings") or []
    palette = analysis.dominant_colors
    tolerance = float(params.get("tolerance", 30))

    if not mappings:
        findings.error("No color mappings specified")
        return
    if len(mappings) > len(palette):
        findings.warn(f"{len(mappings)} mappings for only {len(palette)} dominant colors", 80)

    for mapping in mappings:
        index = mapping["originalIndex"]
        if index >= len(palette):
            findings.error(f"originalIndex {index} is out of range (palette has {len(palette)} colors)")
            continue
        try:
            new_rgb = hex_to_rgb(str(mapping["newColor"]))
        except ValueError:
            findings.error(f"newColor {mapping['newColor']!r} is not a hex color")
            continue
        difference = delta_e(rgb_to_lab(palette[index].rgb), rgb_to_lab(new_rgb))
        if difference < 5:
            findings.warn(f"{palette[index].hex} -> {mapping['newColor']} is barely visible (deltaE {difference:.1f})", 75)
        if params.get("blendMode") == "multiply" and palette[index].percentage > 80:
            findings.warn(f"Multiply over {palette[index].hex} covering {palette[index].percentage:.0f}% darkens most of the image", 85)

    if analysis.unique_color_count > 10_000 and tolerance < 20:
        findings.warn(f"Photographic image ({analysis.unique_color_count} colors) with tolerance {tolerance:.0f} may recolor unevenly", 75)
    elif analysis.unique_color_count < 1000 and tolerance > 40:
        findings.warn(f"Flat image ({analysis.unique_color_count} colors) with tolerance {tolerance:.0f} may bleed into neighbours", 80)


def _check_texture_cut(params: dict[str, Any], ctx: CheckContext, findings: Findings) -> None:
    analysis = ctx.analysis
    if params.get("textureType") == "custom":
        findings.error("Custom textures need an uploaded texture image")
        return

    amount = float(params.get("amount", 1.0))
    scale = float(params.get("scale", 1.0))
    largest = max(analysis.width, analysis.height)
    if amount < 0.1:
        findings.warn(f"Cut amount {amount} will be barely visible", 80)
    elif amount > 0.9:
        findings.warn(f"Cut amount {amount} removes pattern areas completely", 85)
    if scale < 0.5 and largest > 2000:
        findings.warn(f"Texture scale {scale} on a {largest}px image will look like noise", 85)
    elif scale > 3 and largest < 500:
        findings.warn(f"Texture scale {scale} on a {largest}px image shows only a few pattern cells", 85)


def _check_upscaler(params: dict[str, Any], ctx: CheckContext, findings: Findings) -> None:
    analysis = ctx.analysis
    scale = float(params["scaleFactor"])
    out_w, out_h = round(analysis.width * scale), round(analysis.height * scale)
    out_mp = out_w * out_h / 1_000_000
    findings.note(f"Output would be {out_w}x{out_h} ({out_mp:.1f}MP)")

    if out_mp > settings.MAX_OUTPUT_MEGAPIXELS:
        pixels = max(1, analysis.width * analysis.height)
        max_scale = math.floor(math.sqrt(settings.MAX_OUTPUT_MEGAPIXELS * 1_000_000 / pixels) * 10) / 10
        findings.error(
            f"Output of {out_mp:.1f}MP exceeds the {settings.MAX_OUTPUT_MEGAPIXELS:g}MP limit "
            f"(max scale factor for this image is {max_scale:g}x)",
            cap=0,
        )
        return
    if scale > 4 and analysis.width < 500:
        findings.warn(f"{scale:g}x on a {analysis.width}px wide image invents most of the detail", 75)
    if analysis.sharpness_score < 40:
        findings.warn(f"Source is soft (sharpness {analysis.sharpness_score:.0f}), upscaling will magnify blur", 70)
    if analysis.noise_score > 50:
        findings.warn(f"Source is noisy (noise {analysis.noise_score:.0f}), upscaling will magnify noise", 75)


def _check_background_remover(params: dict[str, Any], ctx: CheckContext, findings: Findings) -> None:
    analysis = ctx.analysis
    if analysis.megapixels > settings.LARGE_IMAGE_MEGAPIXELS:
        findings.warn(f"Large image ({analysis.megapixels:.0f}MP) may be slow or downscaled", 85)
    top = analysis.top_color
    if analysis.unique_color_count > 50_000 and (top is None or top.percentage < 20):
        findings.warn("Busy image without a dominant background color, edges may be imprecise", 75)
    if analysis.has_transparency:
        findings.warn(f"Image already has transparency ({analysis.transparent_pct:.0f}% of pixels)", 80)
    if params.get("backgroundColor"):
        try:
            hex_to_rgb(str(params["backgroundColor"]))
        except ValueError:
            findings.error(f"backgroundColor {params['backgroundColor']!r} is not a hex color")


def _check_palette(params: dict[str, Any], ctx: CheckContext, findings: Findings) -> None:
    size = int(params.get("paletteSize", 9))
    if size == 36 and ctx.analysis.unique_color_count < 100:
        findings.warn(f"Only {ctx.analysis.unique_color_count} distinct colors, a 36 color palette will repeat", 85)


def _check_pick_color(params: dict[str, Any], ctx: CheckContext, findings: Findings) -> None:
    x, y = params["x"], params["y"]
    if not (0 <= x < ctx.analysis.width and 0 <= y < ctx.analysis.height):
        findings.error(f"Position ({x}, {y}) is outside the {ctx.analysis.width}x{ctx.analysis.height} image")


def _check_rotate_flip(params: dict[str, Any], ctx: CheckContext, findings: Findings) -> None:
    if params["operation"] == "rotate" and "angle" not in params:
        findings.error("Rotation needs an angle")
    if params["operation"] == "flip" and "direction" not in params:
        findings.error("Flip needs a direction")


def _check_auto_crop(params: dict[str, Any], ctx: CheckContext, findings: Findings) -> None:
    background = str(params.get("backgroundColor", "auto")).lower()
    if background == "transparent" and not ctx.analysis.has_transparency:
        findings.warn("Image has no transparent border to trim", 70)
    elif background not in ("auto", "transparent", "white", "black"):
        try:
            hex_to_rgb(background)
        except ValueError:
            findings.error(f"backgroundColor {params['backgroundColor']!r} is not a known color")


PLAUSIBILITY_CHECKS: dict[str, Callable[[dict[str, Any], CheckContext, Findings], None]] = {
    "color_knockout": _check_color_knockout,
    "recolor_image": _check_recolor,
    "texture_cut": _check_texture_cut,
    "upscaler": _check_upscaler,
    "background_remover": _check_background_remover,
    "extract_color_palette": _check_palette,
    "pick_color_at_position": _check_pick_color,
    "rotate_flip": _check_rotate_flip,
    "auto_crop": _check_auto_crop,
}
