"""
Tool execution contract shared by every tool implementation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from PIL import Image

__all__ = ("ToolError", "ToolFunc", "ToolOutput", "tolerance_to_distance")

# Largest Euclidean distance between two RGB colors
MAX_RGB_DISTANCE = 441.67


class ToolError(Exception):
    """A tool could not produce an output for the given image and parameters."""


@dataclass
class ToolOutput:
    image: Image.Image | None = None  # None for info-only tools
    data: dict[str, Any] | None = None


ToolFunc = Callable[[Image.Image, dict[str, Any]], Awaitable[ToolOutput]]


def tolerance_to_distance(tolerance: float) -> float:
    """Map a 0-100 tolerance onto an RGB distance radius."""
    return max(0.0, min(100.0, float(tolerance))) / 100 * MAX_RGB_DISTANCE * 0.5
