from __future__ import annotations

import statistics
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .import_item import ImportItem

"""Batch import status / result models.

``BatchImportStatus`` is an immutable snapshot. The manager replaces its
snapshot on every update and hands the same frozen object to subscribers, so
nothing a subscriber does can change the manager's state.
"""

__all__ = [
    "BatchImportError",
    "BatchImportStatus",
    "BatchImportResult",
    "ItemFailure",
    "BatchOutcome",
    "BatchStatsAccumulator",
]


@dataclass(frozen=True)
class BatchImportError:
    item_id: str
    item_type: str
    attempt: int  # attempt on which the item finally failed (1-based)
    error: str
    data: Mapping[str, Any]  # read-only copy of the item data


@dataclass(frozen=True)
class BatchImportStatus:
    total: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    retrying: int = 0  # items waiting for a retry attempt
    current_batch: int = 0
    total_batches: int = 0
    progress: int = 0  # 0-100
    speed: float | None = None  # items/sec, None until one full second elapsed
    estimated_time_remaining: int | None = None  # seconds
    start_time: float = 0.0
    elapsed_time: float = 0.0  # seconds
    is_paused: bool = False
    is_cancelled: bool = False
    is_complete: bool = False
    errors: tuple[BatchImportError, ...] = ()

    @property
    def remaining(self) -> int:
        return self.total - self.processed


@dataclass(frozen=True)
class BatchImportResult:
    success: bool  # no failed items and not cancelled
    status: BatchImportStatus
    successful_items: tuple[ImportItem, ...] = ()
    failed_items: tuple[ImportItem, ...] = ()
    errors: tuple[BatchImportError, ...] = ()
    total_batches: int = 0
    avg_batch_seconds: float = 0.0
    p95_batch_seconds: float = 0.0


@dataclass(frozen=True)
class ItemFailure:
    item: ImportItem
    error: str


@dataclass(frozen=True)
class BatchOutcome:
    """What a processor returns for one call."""
    succeeded: list[ImportItem] = field(default_factory=list)
    failed: list[ItemFailure] = field(default_factory=list)


class BatchStatsAccumulator:
    """Collects per-batch timings and summarises them (count, mean, p95)."""

    def __init__(self) -> None:
        self.batch_times: list[float] = []

    def add_batch_time(self, elapsed_seconds: float) -> None:
        self.batch_times.append(elapsed_seconds)

    def get_stats(self) -> tuple[int, float, float]:
        """Return (total_batches, avg_batch_seconds, p95_batch_seconds)."""
        if not self.batch_times:
            return (0, 0.0, 0.0)

        total_batches = len(self.batch_times)
        avg_batch_seconds = statistics.mean(self.batch_times)

        if total_batches == 1:
            p95_batch_seconds = self.batch_times[0]
        else:
            # 19th of 20 inclusive quantiles
            p95_batch_seconds = statistics.quantiles(
                self.batch_times, n=20, method='inclusive'
            )[18]

        return (total_batches, avg_batch_seconds, p95_batch_seconds)
