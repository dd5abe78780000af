"""
Post-execution result verification model.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from app.schema.analysis import ImageAnalysis


class ResultValidation(BaseModel):
    """Pixel-level verdict on whether a tool did what it should have."""

    success: bool
    pixels_changed: int = Field(ge=0, default=0)
    percentage_changed: float = Field(ge=0.0, le=100.0, default=0.0)
    quality_score: float = Field(ge=0.0, le=100.0, default=0.0)
    max_delta: float = Field(ge=0.0, default=0.0)
    avg_delta: float = Field(ge=0.0, default=0.0)
    dimensions_changed: bool = False
    new_transparency_pct: float = 0.0
    # Mask mode: share of the mask painted black
    removed_pct: float | None = None
    warnings: list[str] = Field(default_factory=list)
    failure_reason: str | None = None
    # Set when the verdict failed only on change magnitude
    change_verdict: Literal["too_much", "too_little"] | None = None
    after_analysis: ImageAnalysis | None = Field(default=None, exclude=True, repr=False)
