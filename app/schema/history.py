"""
History store records.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from ulid import ULID

from app.schema.analysis import ImageAnalysis


class HistoryRecord(BaseModel):
    """One verified tool run, kept as a prior for future validation."""

    model_config = ConfigDict(frozen=True)

    record_id: str = Field(default_factory=lambda: str(ULID()))
    feature_vector: tuple[float, ...]
    analysis: ImageAnalysis
    tool_name: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    outcome_success: bool
    quality_score: float = Field(ge=0.0, le=100.0)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class SimilarRecord(BaseModel):
    record: HistoryRecord
    distance: float = Field(ge=0.0)

    @property
    def similarity(self) -> float:
        return 1.0 / (1.0 + self.distance)


class HistoryStats(BaseModel):
    backend: str
    degraded: bool = False
    total_records: int = 0
    records_by_tool: dict[str, int] = Field(default_factory=dict)
    average_quality: float = 0.0
