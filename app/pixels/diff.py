"""
Before/after pixel comparison.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

__all__ = ("PixelDiff", "diff_pixels")


@dataclass(frozen=True)
class PixelDiff:
    pixels_changed: int
    total_pixels: int
    percentage_changed: float
    max_delta: float
    avg_delta: float  # mean distance over changed pixels only
    color_shift: float  # mean RGB-only distance over changed pixels
    dimensions_match: bool


def diff_pixels(before: np.ndarray, after: np.ndarray, threshold: float = 10.0) -> PixelDiff:
    """
    Euclidean RGBA distance per pixel; a pixel counts as changed only above
    *threshold*, which absorbs re-encoding noise.

    Buffers of different shape cannot be aligned, so every output pixel is
    considered new.
    """
    if before.shape != after.shape:
        total = int(after.shape[0] * after.shape[1])
        return PixelDiff(
            pixels_changed=total,
            total_pixels=total,
            percentage_changed=100.0,
            max_delta=255.0,
            avg_delta=128.0,
            color_shift=0.0,
            dimensions_match=False,
        )

    total = int(before.shape[0] * before.shape[1])
    if total == 0:
        return PixelDiff(0, 0, 0.0, 0.0, 0.0, 0.0, True)

    delta = before.reshape(-1, 4).astype(np.float64) - after.reshape(-1, 4).astype(np.float64)
    distance = np.sqrt((delta * delta).sum(axis=1))
    changed = distance > threshold
    count = int(np.count_nonzero(changed))
    if count == 0:
        return PixelDiff(0, total, 0.0, 0.0, 0.0, 0.0, True)

    rgb_shift = np.sqrt((delta[changed, :3] ** 2).sum(axis=1))
    return PixelDiff(
        pixels_changed=count,
        total_pixels=total,
        percentage_changed=count / total * 100,
        max_delta=float(distance[changed].max()),
        avg_delta=float(distance[changed].mean()),
        color_shift=float(rgb_shift.mean()),
        dimensions_match=True,
    )
