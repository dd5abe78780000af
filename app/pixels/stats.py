"""
Pure statistics over an ``(H, W, 4)`` RGBA buffer.

Every function here is deterministic: sampling uses fixed strides or fixed
grids, never a wall-clock seed, so measuring the same buffer twice gives the
same numbers.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from app.pixels.color import color_name, rgb_to_hex

__all__ = (
    "ColorCluster",
    "dark_share",
    "dominant_colors",
    "luminance",
    "noise_score",
    "sharpness_score",
    "transparency",
    "unique_color_count",
)

# Pixels with alpha below this are treated as "not there" for color stats
VISIBLE_ALPHA = 10

_UNIQUE_SAMPLE_TARGET = 250_000
_CLUSTER_SAMPLE_TARGET = 20_000
_KMEANS_ITERATIONS = 10
_NOISE_PATCH = 16
_NOISE_GRID = (5, 4)  # 20 patches


@dataclass(frozen=True)
class ColorCluster:
    rgb: tuple[int, int, int]
    hex: str
    percentage: float
    name: str


def transparency(rgba: np.ndarray) -> tuple[bool, float]:
    """``(any pixel not fully opaque, % of such pixels)``."""
    alpha = rgba[..., 3]
    if alpha.size == 0:
        return False, 0.0
    translucent = int(np.count_nonzero(alpha < 255))
    return translucent > 0, translucent / alpha.size * 100


def _visible_rgb(rgba: np.ndarray) -> np.ndarray:
    flat = rgba.reshape(-1, 4)
    return flat[flat[:, 3] >= VISIBLE_ALPHA, :3]


def unique_color_count(rgba: np.ndarray) -> int:
    """
    Distinct visible colors after 6-bit quantization.

    Images above the sample target are strided and the count is scaled by
    ``sqrt(stride)``, which tracks real counts far better than linear scaling
    because most new colors repeat.
    """
    flat = rgba.reshape(-1, 4)
    stride = max(1, math.ceil(len(flat) / _UNIQUE_SAMPLE_TARGET))
    sample = flat[::stride]
    sample = sample[sample[:, 3] >= VISIBLE_ALPHA, :3].astype(np.uint32) >> 2
    if len(sample) == 0:
        return 0
    packed = (sample[:, 0] << 12) | (sample[:, 1] << 6) | sample[:, 2]
    count = len(np.unique(packed))
    return int(round(count * math.sqrt(stride))) if stride > 1 else count


def luminance(rgba: np.ndarray) -> np.ndarray:
    rgb = rgba[..., :3].astype(np.float64)
    return rgb[..., 0] * 0.299 + rgb[..., 1] * 0.587 + rgb[..., 2] * 0.114


def dark_share(rgba: np.ndarray, level: float = 128.0) -> float:
    """Percentage of pixels darker than *level*, i.e. the removed area of a black/white mask."""
    if rgba.size == 0:
        return 0.0
    return float(np.count_nonzero(luminance(rgba) < level)) / (rgba.shape[0] * rgba.shape[1]) * 100


def sharpness_score(rgba: np.ndarray) -> float:
    """Laplacian variance over the central 80% of the luminance plane, 0-100."""
    gray = luminance(rgba)
    h, w = gray.shape
    y0, x0 = int(h * 0.1), int(w * 0.1)
    y1, x1 = max(y0 + 3, h - y0), max(x0 + 3, w - x0)
    core = gray[y0:y1, x0:x1]
    if core.shape[0] < 3 or core.shape[1] < 3:
        return 0.0

    lap = (
        -4 * core[1:-1, 1:-1]
        + core[:-2, 1:-1]
        + core[2:, 1:-1]
        + core[1:-1, :-2]
        + core[1:-1, 2:]
    )
    return float(min(100.0, lap.var()))


def noise_score(rgba: np.ndarray) -> float:
    """Mean luminance variance of small patches on a fixed grid, 0-100."""
    gray = luminance(rgba)
    h, w = gray.shape
    size = min(_NOISE_PATCH, h, w)
    if size < 2:
        return 0.0

    cols, rows = _NOISE_GRID
    ys = np.linspace(0, h - size, rows).astype(int)
    xs = np.linspace(0, w - size, cols).astype(int)
    variances = [float(gray[y : y + size, x : x + size].var()) for y in ys for x in xs]
    return float(min(100.0, np.mean(variances) / 200 * 100))


def dominant_colors(rgba: np.ndarray, count: int = 9) -> list[ColorCluster]:
    """
    K-means palette of the visible pixels, largest cluster first.

    Centers are seeded by farthest-point selection starting from the most
    frequent quantized color, so the result is stable across runs.
    """
    pixels = _visible_rgb(rgba)
    if len(pixels) == 0 or count <= 0:
        return []
    stride = max(1, len(pixels) // _CLUSTER_SAMPLE_TARGET)
    pixels = pixels[::stride].astype(np.float64)

    centers = _seed_centers(pixels, count)
    labels = np.zeros(len(pixels), dtype=int)
    for iteration in range(_KMEANS_ITERATIONS):
        dist = ((pixels[:, None, :] - centers[None, :, :]) ** 2).sum(axis=2)
        new_labels = dist.argmin(axis=1)
        if iteration > 0 and np.array_equal(new_labels, labels):
            break
        labels = new_labels
        for i in range(len(centers)):
            members = pixels[labels == i]
            if len(members):
                centers[i] = members.mean(axis=0)

    sizes = np.bincount(labels, minlength=len(centers))
    clusters = []
    for i in np.argsort(-sizes, kind="stable"):
        if sizes[i] == 0:
            continue
        rgb = tuple(int(round(c)) for c in centers[i])
        clusters.append(
            ColorCluster(
                rgb=rgb,  # type: ignore[arg-type]
                hex=rgb_to_hex(rgb),
                percentage=float(sizes[i] / len(pixels) * 100),
                name=color_name(rgb),
            )
        )
    return clusters


def _seed_centers(pixels: np.ndarray, count: int) -> np.ndarray:
    quantized = pixels.astype(np.uint32) >> 3
    packed = (quantized[:, 0] << 10) | (quantized[:, 1] << 5) | quantized[:, 2]
    values, counts = np.unique(packed, return_counts=True)
    first = int(np.argmax(packed == values[np.argmax(counts)]))

    centers = [pixels[first]]
    nearest = ((pixels - centers[0]) ** 2).sum(axis=1)
    while len(centers) < count:
        idx = int(nearest.argmax())
        if nearest[idx] == 0:
            break
        centers.append(pixels[idx])
        nearest = np.minimum(nearest, ((pixels - pixels[idx]) ** 2).sum(axis=1))
    return np.array(centers, dtype=np.float64)
