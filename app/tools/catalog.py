"""
Tool catalog — every tool's parameter contract and structural invariants.

A tool that is not in this catalog is never validated or executed. Parameter
schemas are generated from the models in ``app.tools.params``.
"""

from __future__ import annotations

from typing import Any

from app.schema.tool import ToolFamily, ToolSpec
from app.tools.params import PARAMETER_MODELS

__all__ = ("TOOL_CATALOG", "get_tool_spec", "planner_tool_declarations")


def _spec(name: str, **fields: Any) -> ToolSpec:
    return ToolSpec(name=name, parameters=PARAMETER_MODELS[name].model_json_schema(), **fields)


_SPECS: tuple[ToolSpec, ...] = (
    _spec(
        "color_knockout",
        description=(
            "Remove specific colors from an image with adjustable tolerance. Use for knocking out "
            "a flat background color or isolating a color range. Only name colors listed in the "
            "ground truth dominant colors."
        ),
        family=ToolFamily.color_removal,
        must_keep_dimensions=True,
        must_add_transparency=True,
        min_change_pct=1.0,
        max_change_pct=95.0,
    ),
    _spec(
        "extract_color_palette",
        description="Extract the dominant colors of the image as a palette.",
        family=ToolFamily.info,
        max_change_pct=0.0,
    ),
    _spec(
        "recolor_image",
        description=(
            "Recolor an image by mapping palette colors (by index into the dominant colors) "
            "to new colors."
        ),
        family=ToolFamily.recolor,
        must_keep_dimensions=True,
        min_change_pct=5.0,
        max_change_pct=95.0,
    ),
    _spec(
        "texture_cut",
        description=(
            "Cut parts of the image to transparent through a pattern mask. Dark areas of the "
            "pattern cut, light areas keep the image."
        ),
        family=ToolFamily.texture_mask,
        must_keep_dimensions=True,
        min_change_pct=5.0,
        max_change_pct=95.0,
    ),
    _spec(
        "background_remover",
        description=(
            "Remove the background around the main subject. Prefer this over color_knockout "
            "when the user asks to remove the background."
        ),
        family=ToolFamily.background_removal,
        must_keep_dimensions=True,
        must_add_transparency=True,
        min_change_pct=10.0,
        max_change_pct=95.0,
    ),
    _spec(
        "upscaler",
        description="Upscale the image by an integer or fractional factor greater than 1.",
        family=ToolFamily.upscale,
        must_grow_dimensions=True,
        min_change_pct=0.0,
    ),
    _spec(
        "pick_color_at_position",
        description="Read the color of one pixel.",
        family=ToolFamily.info,
        max_change_pct=0.0,
    ),
    _spec(
        "rotate_flip",
        description="Rotate by a multiple of 90 degrees or flip horizontally / vertically.",
        family=ToolFamily.geometry,
    ),
    _spec(
        "auto_crop",
        description="Trim empty space (transparent or a flat background color) around the design.",
        family=ToolFamily.geometry,
    ),
)


TOOL_CATALOG: dict[str, ToolSpec] = {spec.name: spec for spec in _SPECS}


def get_tool_spec(name: str) -> ToolSpec | None:
    return TOOL_CATALOG.get(name)


def planner_tool_declarations(catalog: dict[str, ToolSpec] | None = None) -> list[dict[str, Any]]:
    """Provider-neutral function declarations: ``{name, description, parameters}``."""
    catalog = TOOL_CATALOG if catalog is None else catalog
    return [
        {"name": spec.name, "description": spec.description, "parameters": spec.parameters}
        for spec in catalog.values()
    ]
