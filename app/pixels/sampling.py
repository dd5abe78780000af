"""
Bounded pixel sampling for color-existence checks.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from app.pixels.color import color_distance
from app.pixels.stats import VISIBLE_ALPHA

__all__ = ("ColorPresence", "color_presence", "sample_pixels")

_SAMPLE_SEED = 0x5EED


@dataclass(frozen=True)
class ColorPresence:
    nearest_distance: float
    match_pct: float  # % of sampled visible pixels within the match distance
    sample_size: int


def sample_pixels(
    rgba: np.ndarray,
    *,
    ratio: float = 0.01,
    minimum: int = 1000,
    maximum: int = 50_000,
) -> np.ndarray:
    """
    ``(N, 3)`` visible pixels, ``N = clamp(ratio * total, minimum, maximum)``.

    Uses a fixed-seed generator so repeated validation of the same image
    samples the same pixels.
    """
    flat = rgba.reshape(-1, 4)
    visible = flat[flat[:, 3] >= VISIBLE_ALPHA, :3]
    if len(visible) == 0:
        return np.empty((0, 3), dtype=np.uint8)

    target = int(min(maximum, max(minimum, len(flat) * ratio)))
    if target >= len(visible):
        return visible
    rng = np.random.default_rng(_SAMPLE_SEED)
    idx = rng.choice(len(visible), size=target, replace=False)
    idx.sort()
    return visible[idx]


def color_presence(samples: np.ndarray, rgb, match_distance: float) -> ColorPresence:
    """How close *rgb* comes to the sampled pixels and how common it is."""
    if len(samples) == 0:
        return ColorPresence(nearest_distance=float("inf"), match_pct=0.0, sample_size=0)
    distances = np.asarray(color_distance(samples, np.asarray(rgb, dtype=np.float64)))
    return ColorPresence(
        nearest_distance=float(distances.min()),
        match_pct=float(np.count_nonzero(distances < match_distance) / len(samples) * 100),
        sample_size=len(samples),
    )
