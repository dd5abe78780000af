"""Post-execution verification: pixel-level result checks and confidence aggregation."""

from app.verification.confidence import execution_confidence, should_store, turn_confidence
from app.verification.result import ResultValidator

__all__ = (
    "ResultValidator",
    "execution_confidence",
    "should_store",
    "turn_confidence",
)
