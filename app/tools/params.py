"""
Tool parameter models.

Each tool's contract is stated once, as a pydantic model: the planner is
offered ``Model.model_json_schema()`` and every proposal is parsed with
``Model.model_validate`` before anything else looks at it. Field names are
snake_case here and camelCase on the wire.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

__all__ = (
    "PARAMETER_MODELS",
    "ToolParameters",
    "parse_parameters",
)


def _integral(value: Any) -> Any:
    # Function-call arguments are JSON numbers, 90 may come back as 90.0
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


PaletteSize = Annotated[Literal[9, 36], BeforeValidator(_integral)]
RightAngle = Annotated[Literal[90, 180, 270, -90, -180, -270], BeforeValidator(_integral)]


class ToolParameters(BaseModel):
    """Base for tool parameters: camelCase aliases, unknown keys dropped."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    @classmethod
    def wire_names(cls) -> set[str]:
        return {field.alias or name for name, field in cls.model_fields.items()}


# ── Color tools ──────────────────────────────────────────────────────────


class ColorSpec(ToolParameters):
    hex: str = Field(description="Hex color code (e.g. #FF0000)")
    r: int = Field(ge=0, le=255, description="Red value 0-255")
    g: int = Field(ge=0, le=255, description="Green value 0-255")
    b: int = Field(ge=0, le=255, description="Blue value 0-255")


class ColorKnockoutParameters(ToolParameters):
    colors: list[ColorSpec] = Field(description="Colors to remove from the image")
    tolerance: float = Field(
        default=30, ge=0, le=100, description="Color matching tolerance 0-100 (higher = more similar colors removed)"
    )
    replace_mode: Literal["transparency", "color", "mask"] = Field(
        default="transparency", description="transparency, color (replace with white) or mask (black/white mask)"
    )
    feather: float = Field(default=0, ge=0, le=20, description="Edge feathering in pixels")
    anti_aliasing: bool = Field(default=True, description="Smooth edges")


class ColorMapping(ToolParameters):
    original_index: int = Field(ge=0, description="Index into the ground truth dominant colors")
    new_color: str = Field(description="New hex color")


class RecolorParameters(ToolParameters):
    color_mappings: list[ColorMapping] = Field(description="Palette colors to replace")
    blend_mode: Literal["replace", "overlay", "multiply"] = "replace"
    tolerance: float = Field(default=30, ge=0, le=100, description="How far from the palette color a pixel may be")


class PaletteParameters(ToolParameters):
    palette_size: PaletteSize = 9
    algorithm: Literal["smart", "detailed"] = "smart"


class PickColorParameters(ToolParameters):
    x: float = Field(ge=0, description="Column, 0 is the left edge")
    y: float = Field(ge=0, description="Row, 0 is the top edge")


# ── Mask tools ───────────────────────────────────────────────────────────


class TextureCutParameters(ToolParameters):
    texture_type: Literal["dots", "lines", "grid", "noise", "custom"]
    invert: bool = False
    amount: float = Field(default=1, ge=0, le=1, description="How strongly pattern areas are cut")
    scale: float = Field(default=1, ge=0.1, le=5)
    rotation: float = Field(default=0, ge=0, le=360)
    tile: bool = True


class BackgroundRemoverParameters(ToolParameters):
    model: Literal["bria", "codeplugtech", "fallback"] = "bria"
    output_format: Literal["png", "webp"] = "png"
    background_color: str | None = Field(default=None, description="Optional hex fill instead of transparency")


# ── Geometry tools ───────────────────────────────────────────────────────


class UpscalerParameters(ToolParameters):
    model: Literal["standard", "creative", "anime"] = "standard"
    scale_factor: float = Field(gt=1, le=10, description="Output size multiplier, greater than 1")
    face_enhance: bool = False
    output_format: Literal["png", "jpg", "webp"] = "png"


class RotateFlipParameters(ToolParameters):
    operation: Literal["rotate", "flip"]
    angle: RightAngle | None = Field(default=None, description="Clockwise degrees, for rotate")
    direction: Literal["horizontal", "vertical"] | None = Field(default=None, description="For flip")


class AutoCropParameters(ToolParameters):
    tolerance: float = Field(default=30, ge=0, le=255)
    padding: int = Field(default=0, ge=0, le=2000)
    background_color: str = Field(default="auto", description="auto, transparent, white, black or a hex color")


PARAMETER_MODELS: dict[str, type[ToolParameters]] = {
    "color_knockout": ColorKnockoutParameters,
    "extract_color_palette": PaletteParameters,
    "recolor_image": RecolorParameters,
    "texture_cut": TextureCutParameters,
    "background_remover": BackgroundRemoverParameters,
    "upscaler": UpscalerParameters,
    "pick_color_at_position": PickColorParameters,
    "rotate_flip": RotateFlipParameters,
    "auto_crop": AutoCropParameters,
}


def _location(loc: tuple[int | str, ...]) -> str:
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path or "parameters"


def parse_parameters(
    model: type[ToolParameters],
    parameters: dict[str, Any],
) -> tuple[dict[str, Any] | None, list[str], list[str]]:
    """
    Parse planner arguments with *model*.

    Returns ``(parameters, errors, warnings)``. On success the parameters are
    the normalized wire-format dict with defaults filled in; on failure they
    are None and every pydantic error becomes one message.
    """
    known = model.wire_names()
    warnings = [f"Unknown parameter {name!r} ignored" for name in parameters if name not in known]
    try:
        parsed = model.model_validate(parameters)
    except ValidationError as exc:
        errors = []
        for error in exc.errors():
            where = _location(error["loc"])
            if error["type"] == "missing":
                errors.append(f"Missing required parameter: {where}")
            else:
                errors.append(f"{where}: {error['msg']}")
        return None, errors, warnings
    return parsed.model_dump(by_alias=True, exclude_none=True), [], warnings
