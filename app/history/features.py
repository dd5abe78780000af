"""
Compact feature summary of an ImageAnalysis for similarity search.

Each component is normalized to [0, 1] and pre-multiplied by the square root
of its weight, so plain Euclidean distance between two vectors is the
weighted distance. The in-memory store and the vector index therefore rank
neighbours identically.
"""

from __future__ import annotations

import math

from app.pixels import rgb_to_lab
from app.schema.analysis import ImageAnalysis

__all__ = ("FEATURE_DIM", "FEATURE_WEIGHTS", "feature_vector")

FEATURE_WEIGHTS: tuple[tuple[str, float], ...] = (
    ("size", 0.25),
    ("aspect", 0.10),
    ("transparency", 0.15),
    ("unique_colors", 0.15),
    ("sharpness", 0.10),
    ("noise", 0.05),
    ("print_ready", 0.10),
    ("color_l", 0.10 / 3),
    ("color_a", 0.10 / 3),
    ("color_b", 0.10 / 3),
)

FEATURE_DIM = len(FEATURE_WEIGHTS)


def feature_vector(analysis: ImageAnalysis) -> tuple[float, ...]:
    ratio = analysis.width / analysis.height if analysis.width and analysis.height else 1.0
    top = analysis.top_color
    if top is not None:
        lab = rgb_to_lab(top.rgb)
        color = (lab[0] / 100, (lab[1] + 128) / 255, (lab[2] + 128) / 255)
    else:
        color = (0.5, 0.5, 0.5)

    raw = (
        min(1.0, math.log2(1 + analysis.megapixels) / 6),
        0.5 + 0.5 * math.tanh(math.log(ratio)),
        1.0 if analysis.has_transparency else 0.0,
        min(1.0, math.log10(1 + analysis.unique_color_count) / 6),
        analysis.sharpness_score / 100,
        analysis.noise_score / 100,
        1.0 if analysis.is_print_ready else 0.0,
        *color,
    )
    return tuple(float(value * math.sqrt(weight)) for value, (_, weight) in zip(raw, FEATURE_WEIGHTS))
