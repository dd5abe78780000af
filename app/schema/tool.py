"""
Tool call models: unverified proposals, validation verdicts, validated calls,
execution outcomes.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ToolFamily(StrEnum):
    color_removal = "color-removal"
    recolor = "recolor"
    background_removal = "background-removal"
    upscale = "upscale"
    texture_mask = "texture-mask"
    geometry = "geometry"
    info = "info"


class ToolSpec(BaseModel):
    """Published contract of one tool: name, parameter schema, structural invariants."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    family: ToolFamily
    parameters: dict[str, Any]  # JSON-schema object
    must_grow_dimensions: bool = False
    must_keep_dimensions: bool = False
    must_add_transparency: bool = False
    min_change_pct: float = 0.0
    max_change_pct: float = 100.0

    @property
    def mutates_image(self) -> bool:
        return self.family != ToolFamily.info

    @property
    def consumes_colors(self) -> bool:
        return self.family in (ToolFamily.color_removal, ToolFamily.recolor)


class ToolCallProposal(BaseModel):
    """A tool call suggested by the planner. Never executed directly."""

    model_config = ConfigDict(frozen=True)

    tool_name: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class ValidationResult(BaseModel):
    """Verdict of the parameter validator for one proposal."""

    is_valid: bool
    confidence: float = Field(ge=0.0, le=100.0)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    adjusted_parameters: dict[str, Any] | None = None
    reasoning: str = ""
    historical_confidence: float | None = None
    # Normalized parameters the checks approved, with resolved colors pinned
    validated_parameters: dict[str, Any] | None = None

    @model_validator(mode="after")
    def _errors_invalidate(self) -> ValidationResult:
        if self.errors:
            self.is_valid = False
        return self


class ValidatedToolCall(BaseModel):
    """
    A proposal that passed validation. Only the parameter validator builds
    these and the execution router accepts nothing else.
    """

    model_config = ConfigDict(frozen=True)

    tool_name: str
    parameters: dict[str, Any]
    proposal: ToolCallProposal
    validation: ValidationResult

    @model_validator(mode="after")
    def _must_be_valid(self) -> ValidatedToolCall:
        if not self.validation.is_valid:
            raise ValueError(f"{self.tool_name}: cannot wrap a failed validation")
        return self


class ExecutionOutcome(BaseModel):
    """Result of running one validated call (or of skipping it)."""

    tool_name: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    success: bool
    result_image_handle: str | None = None
    data: dict[str, Any] | None = None  # info-only tool output
    error: str | None = None
    elapsed_ms: float = 0.0
    skipped: bool = False
    result_image: bytes | None = Field(default=None, exclude=True, repr=False)
