"""
Confidence aggregation: the weakest link sets the headline number.
"""

from __future__ import annotations

from typing import Sequence

from app.core.config import settings
from app.schema.analysis import ImageAnalysis
from app.schema.orchestration import ToolExecution
from app.schema.result import ResultValidation
from app.schema.tool import ExecutionOutcome, ValidationResult

__all__ = ("execution_confidence", "should_store", "turn_confidence")


def execution_confidence(
    ground_truth: ImageAnalysis,
    validation: ValidationResult,
    outcome: ExecutionOutcome | None,
    result: ResultValidation | None,
) -> float:
    """min(ground truth, validation, result quality, historical prior); 0 for anything that did not succeed."""
    if not validation.is_valid or outcome is None or not outcome.success or result is None:
        return 0.0
    parts = [ground_truth.confidence, validation.confidence, result.quality_score]
    if validation.historical_confidence is not None:
        parts.append(validation.historical_confidence)
    if not result.success:
        parts.append(0.0)
    return round(max(0.0, min(parts)), 1)


def turn_confidence(ground_truth: ImageAnalysis, executions: Sequence[ToolExecution]) -> float:
    if not executions:
        return ground_truth.confidence
    overall = min(e.confidence for e in executions)
    if len(executions) > settings.MULTI_TOOL_PENALTY_AFTER:
        overall -= settings.MULTI_TOOL_PENALTY
    return round(max(0.0, overall), 1)


def should_store(execution: ToolExecution) -> bool:
    """Only confidently verified successes feed the history store."""
    return (
        execution.outcome is not None
        and execution.outcome.success
        and execution.result_validation is not None
        and execution.result_validation.success
        and execution.confidence >= settings.HISTORY_STORE_THRESHOLD
    )
