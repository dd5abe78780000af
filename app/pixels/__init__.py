"""Pixel analysis library — color math, statistics, sampling, diffs."""

from app.pixels.color import color_distance, color_name, delta_e, hex_to_rgb, rgb_to_hex, rgb_to_lab
from app.pixels.diff import PixelDiff, diff_pixels
from app.pixels.io import DecodedImage, ImageLoadError, decode_image, encode_png, to_rgba_array
from app.pixels.sampling import ColorPresence, color_presence, sample_pixels
from app.pixels.stats import (
    ColorCluster,
    dark_share,
    dominant_colors,
    noise_score,
    sharpness_score,
    transparency,
    unique_color_count,
)

__all__ = (
    "ColorCluster",
    "ColorPresence",
    "DecodedImage",
    "ImageLoadError",
    "PixelDiff",
    "color_distance",
    "color_name",
    "color_presence",
    "dark_share",
    "decode_image",
    "delta_e",
    "diff_pixels",
    "dominant_colors",
    "encode_png",
    "hex_to_rgb",
    "noise_score",
    "rgb_to_hex",
    "rgb_to_lab",
    "sample_pixels",
    "sharpness_score",
    "to_rgba_array",
    "transparency",
    "unique_color_count",
)
