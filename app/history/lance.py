"""
History store backed by a LanceDB vector table.

The index is a soft dependency: every record is mirrored into an in-memory
store, and the first index failure switches the store to that mirror for the
rest of the process lifetime.
"""

from __future__ import annotations

import math
from collections import Counter
from typing import Any, Awaitable, Callable, Sequence

import pyarrow as pa

from app.core.config import settings
from app.core.db import open_table
from app.core.log import logger
from app.history.features import FEATURE_DIM
from app.history.store import HistoryUnavailableError, InMemoryHistoryStore
from app.schema.history import HistoryRecord, HistoryStats, SimilarRecord

__all__ = ("HISTORY_SCHEMA", "LanceHistoryStore")

HISTORY_SCHEMA = pa.schema(
    [
        pa.field("record_id", pa.string()),
        pa.field("vector", pa.list_(pa.float32(), FEATURE_DIM)),
        pa.field("tool_name", pa.string()),
        pa.field("outcome_success", pa.bool_()),
        pa.field("quality_score", pa.float64()),
        pa.field("timestamp", pa.float64()),
        pa.field("payload", pa.string()),
    ]
)


def _to_row(entry: HistoryRecord) -> dict[str, Any]:
    return {
        "record_id": entry.record_id,
        "vector": [float(v) for v in entry.feature_vector],
        "tool_name": entry.tool_name,
        "outcome_success": entry.outcome_success,
        "quality_score": entry.quality_score,
        "timestamp": entry.timestamp.timestamp(),
        "payload": entry.model_dump_json(),
    }


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class LanceHistoryStore:
    backend = "lancedb"

    def __init__(
        self,
        table_name: str | None = None,
        max_records: int | None = None,
        table_factory: Callable[[str, pa.Schema], Awaitable[Any]] = open_table,
    ):
        self.table_name = table_name or settings.HISTORY_TABLE
        self.max_records = max_records or settings.HISTORY_MAX_RECORDS
        self._table_factory = table_factory
        self._table: Any = None
        self._fallback = InMemoryHistoryStore(self.max_records)
        self.degraded = False

    async def _get_table(self):
        if self.degraded:
            raise HistoryUnavailableError("history index disabled after an earlier failure")
        if self._table is None:
            self._table = await self._table_factory(self.table_name, HISTORY_SCHEMA)
        return self._table

    def _degrade(self, exc: Exception) -> None:
        if not self.degraded:
            logger.warning(
                f"History: vector index unavailable ({type(exc).__name__}: {exc}), "
                f"continuing with in-memory history"
            )
        self.degraded = True
        self._table = None

    async def record(self, entry: HistoryRecord) -> HistoryRecord:
        await self._fallback.record(entry)
        try:
            table = await self._get_table()
            await table.add([_to_row(entry)])
            await self._prune(table)
        except HistoryUnavailableError:
            pass
        except Exception as exc:
            self._degrade(exc)
        return entry

    async def _prune(self, table) -> None:
        count = await table.count_rows()
        excess = count - self.max_records
        if excess <= 0:
            return
        rows = await table.query().select(["timestamp"]).to_list()
        cutoff = sorted(row["timestamp"] for row in rows)[excess - 1]
        await table.delete(f"timestamp <= {cutoff!r}")
        logger.debug(f"History: pruned {excess} oldest record(s) from {self.table_name}")

    async def find_similar(self, tool_name: str, vector: Sequence[float], k: int) -> list[SimilarRecord]:
        try:
            table = await self._get_table()
            rows = await (
                table.query()
                .nearest_to([float(v) for v in vector])
                .distance_type("l2")
                .where(f"tool_name = {_quote(tool_name)} AND outcome_success = true")
                .limit(k)
                .to_list()
            )
        except HistoryUnavailableError:
            return await self._fallback.find_similar(tool_name, vector, k)
        except Exception as exc:
            self._degrade(exc)
            return await self._fallback.find_similar(tool_name, vector, k)

        # l2 distances come back squared
        return [
            SimilarRecord(
                record=HistoryRecord.model_validate_json(row["payload"]),
                distance=math.sqrt(max(0.0, float(row["_distance"]))),
            )
            for row in rows
        ]

    async def stats(self) -> HistoryStats:
        try:
            table = await self._get_table()
            rows = await table.query().select(["tool_name", "quality_score"]).to_list()
        except HistoryUnavailableError:
            rows = None
        except Exception as exc:
            self._degrade(exc)
            rows = None

        if rows is None:
            stats = await self._fallback.stats()
            return stats.model_copy(update={"backend": self.backend, "degraded": True})

        return HistoryStats(
            backend=self.backend,
            total_records=len(rows),
            records_by_tool=dict(Counter(row["tool_name"] for row in rows)),
            average_quality=(sum(row["quality_score"] for row in rows) / len(rows)) if rows else 0.0,
        )

    async def clear(self) -> None:
        await self._fallback.clear()
        try:
            table = await self._get_table()
            await table.delete("true")
        except HistoryUnavailableError:
            pass
        except Exception as exc:
            self._degrade(exc)
