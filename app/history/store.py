"""
History store — append-only log of verified tool runs with similarity lookup.

The store is always injected; ``build_history_store`` picks the backend from
settings. The in-memory store is the test double and the degraded mode of the
vector-index store.
"""

from __future__ import annotations

import asyncio
import math
from collections import Counter
from typing import Any, Protocol, Sequence

from app.core.config import settings
from app.core.log import logger
from app.history.features import feature_vector
from app.schema.analysis import ImageAnalysis
from app.schema.history import HistoryRecord, HistoryStats, SimilarRecord

__all__ = (
    "HistoryStore",
    "HistoryUnavailableError",
    "InMemoryHistoryStore",
    "build_history_store",
    "make_record",
)


class HistoryUnavailableError(Exception):
    """The backing similarity index cannot be reached."""


class HistoryStore(Protocol):
    backend: str

    async def record(self, entry: HistoryRecord) -> HistoryRecord: ...

    async def find_similar(self, tool_name: str, vector: Sequence[float], k: int) -> list[SimilarRecord]: ...

    async def stats(self) -> HistoryStats: ...

    async def clear(self) -> None: ...


def make_record(
    analysis: ImageAnalysis,
    tool_name: str,
    parameters: dict[str, Any],
    outcome_success: bool,
    quality_score: float,
) -> HistoryRecord:
    return HistoryRecord(
        feature_vector=feature_vector(analysis),
        analysis=analysis,
        tool_name=tool_name,
        parameters=parameters,
        outcome_success=outcome_success,
        quality_score=max(0.0, min(100.0, quality_score)),
    )


def _distance(a: Sequence[float], b: Sequence[float]) -> float:
    return math.sqrt(sum((x - y) ** 2 for x, y in zip(a, b)))


class InMemoryHistoryStore:
    """Process-local store. Appends take a short lock, reads work on a snapshot."""

    backend = "memory"

    def __init__(self, max_records: int | None = None):
        self.max_records = max_records or settings.HISTORY_MAX_RECORDS
        self._records: list[HistoryRecord] = []
        self._lock = asyncio.Lock()

    async def record(self, entry: HistoryRecord) -> HistoryRecord:
        async with self._lock:
            records = [*self._records, entry]
            if len(records) > self.max_records:
                dropped = len(records) - self.max_records
                records = records[dropped:]
                logger.debug(f"History: pruned {dropped} oldest record(s)")
            self._records = records
        return entry

    async def find_similar(self, tool_name: str, vector: Sequence[float], k: int) -> list[SimilarRecord]:
        snapshot = self._records
        matches = [
            SimilarRecord(record=r, distance=_distance(r.feature_vector, vector))
            for r in snapshot
            if r.tool_name == tool_name and r.outcome_success
        ]
        matches.sort(key=lambda m: (m.distance, -m.record.timestamp.timestamp()))
        return matches[: max(0, k)]

    async def stats(self) -> HistoryStats:
        snapshot = self._records
        return HistoryStats(
            backend=self.backend,
            total_records=len(snapshot),
            records_by_tool=dict(Counter(r.tool_name for r in snapshot)),
            average_quality=(sum(r.quality_score for r in snapshot) / len(snapshot)) if snapshot else 0.0,
        )

    async def clear(self) -> None:
        async with self._lock:
            self._records = []

    def __len__(self) -> int:
        return len(self._records)


def build_history_store() -> HistoryStore:
    if settings.HISTORY_BACKEND == "lancedb":
        from app.history.lance import LanceHistoryStore  # noqa: PLC0415

        return LanceHistoryStore()
    return InMemoryHistoryStore()
