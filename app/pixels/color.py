"""
Color conversions and distances.

All functions accept either a single color or an ``(N, 3)`` array and are
vectorized over numpy, so the validators can measure thousands of sampled
pixels in one call.
"""

from __future__ import annotations

import colorsys
import re

import numpy as np

__all__ = (
    "color_distance",
    "color_name",
    "delta_e",
    "hex_to_rgb",
    "rgb_to_hex",
    "rgb_to_lab",
)

_HEX_RE = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")

# sRGB -> XYZ, D65
_RGB_TO_XYZ = np.array(
    [
        [0.4124564, 0.3575761, 0.1804375],
        [0.2126729, 0.7151522, 0.0721750],
        [0.0193339, 0.1191920, 0.9503041],
    ]
)
_D65_WHITE = np.array([0.95047, 1.0, 1.08883])
_EPSILON = 216 / 24389
_KAPPA = 24389 / 27


def hex_to_rgb(value: str) -> tuple[int, int, int]:
    """Parse ``#rrggbb`` / ``rrggbb`` / ``#rgb``. Raises ValueError on anything else."""
    match = _HEX_RE.match(value.strip()) if isinstance(value, str) else None
    if match is None:
        raise ValueError(f"Invalid hex color: {value!r}")
    digits = match.group(1)
    if len(digits) == 3:
        digits = "".join(c * 2 for c in digits)
    return int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16)


def rgb_to_hex(rgb) -> str:
    r, g, b = (int(np.clip(round(float(c)), 0, 255)) for c in rgb[:3])
    return f"#{r:02x}{g:02x}{b:02x}"


def rgb_to_lab(rgb) -> np.ndarray:
    """
    sRGB (0-255) to CIE L*a*b* under D65.

    Returns shape ``(3,)`` for a single color, ``(N, 3)`` for an array.
    Output is clamped to L in [0, 100] and a, b in [-128, 127].
    """
    arr = np.asarray(rgb, dtype=np.float64)
    single = arr.ndim == 1
    arr = np.atleast_2d(arr)[:, :3] / 255.0

    linear = np.where(arr > 0.04045, ((arr + 0.055) / 1.055) ** 2.4, arr / 12.92)
    xyz = linear @ _RGB_TO_XYZ.T / _D65_WHITE

    f = np.where(xyz > _EPSILON, np.cbrt(xyz), (_KAPPA * xyz + 16) / 116)
    lab = np.column_stack(
        [
            116 * f[:, 1] - 16,
            500 * (f[:, 0] - f[:, 1]),
            200 * (f[:, 1] - f[:, 2]),
        ]
    )
    lab[:, 0] = np.clip(lab[:, 0], 0, 100)
    lab[:, 1:] = np.clip(lab[:, 1:], -128, 127)
    return lab[0] if single else lab


def delta_e(lab1, lab2) -> np.ndarray | float:
    """CIE76 perceptual distance (Euclidean in L*a*b*)."""
    diff = np.asarray(lab1, dtype=np.float64) - np.asarray(lab2, dtype=np.float64)
    dist = np.sqrt(np.sum(diff * diff, axis=-1))
    return float(dist) if np.ndim(dist) == 0 else dist


def color_distance(rgb1, rgb2) -> np.ndarray | float:
    """Euclidean distance in RGB space (0 .. ~441.7)."""
    diff = np.asarray(rgb1, dtype=np.float64)[..., :3] - np.asarray(rgb2, dtype=np.float64)[..., :3]
    dist = np.sqrt(np.sum(diff * diff, axis=-1))
    return float(dist) if np.ndim(dist) == 0 else dist


def color_name(rgb) -> str:
    """Coarse human name from hue / saturation / lightness."""
    r, g, b = (float(c) / 255.0 for c in rgb[:3])
    h, lightness, s = colorsys.rgb_to_hls(r, g, b)
    h, s, lightness = h * 360, s * 100, lightness * 100

    if s < 10:
        if lightness > 90:
            return "White"
        if lightness < 10:
            return "Black"
        return "Gray"
    if h < 15 or h >= 345:
        return "Red"
    if h < 45:
        return "Orange"
    if h < 75:
        return "Yellow"
    if h < 165:
        return "Green"
    if h < 195:
        return "Cyan"
    if h < 255:
        return "Blue"
    if h < 285:
        return "Purple"
    return "Magenta"
