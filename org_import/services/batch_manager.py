from __future__ import annotations

import asyncio
import copy
import inspect
import logging
import math
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import replace
from enum import Enum
from types import MappingProxyType
from typing import Any

from ..models.batch_status import (
    BatchImportError,
    BatchImportResult,
    BatchImportStatus,
    BatchOutcome,
    BatchStatsAccumulator,
    ItemFailure,
)
from ..models.config_models import BatchImportConfig
from ..models.import_item import ImportItem

"""Batch import manager.

Drives a caller-supplied processor over classified items in fixed-size
batches with retry, pause / resume, cooperative cancellation and progress
snapshots for subscribers. Sync processors run in a worker thread; async ones
are awaited on the loop.

Lifecycle: idle -> running -> (paused <-> running) -> complete | cancelled.
Pause and cancel are observed at the top of each batch; an in-flight batch
(including its retries) always finishes.
"""

__all__ = [
    "BatchImportManager",
    "BatchImportStateError",
    "ImportState",
    "Processor",
    "Subscriber",
    "calculate_optimal_batch_size",
    "format_elapsed_time",
    "format_eta",
    "PAUSE_POLL_INTERVAL",
]

logger = logging.getLogger(__name__)

PAUSE_POLL_INTERVAL = 0.1  # seconds

Processor = Callable[[list[ImportItem]], "BatchOutcome | Awaitable[BatchOutcome]"]
Subscriber = Callable[[BatchImportStatus], Any]

_UNREPORTED = "item was not reported by the processor"


class BatchImportStateError(RuntimeError):
    """Raised when a manager method is called in the wrong lifecycle state."""


class ImportState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


def calculate_optimal_batch_size(total_items: int) -> int:
    if total_items < 100:
        return 10
    if total_items < 500:
        return 25
    if total_items < 1000:
        return 50
    if total_items < 5000:
        return 100
    return 200


def _is_async_callable(func: Any) -> bool:
    return inspect.iscoroutinefunction(func) or inspect.iscoroutinefunction(
        getattr(func, "__call__", None)
    )


def format_elapsed_time(seconds: float) -> str:
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    minutes, rest = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m {rest}s" if rest else f"{minutes}m"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m"


def format_eta(seconds: float | None) -> str:
    if seconds is None or seconds < 1:
        return "Calculating..."
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s remaining"
    minutes, rest = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m {rest}s remaining" if rest else f"{minutes}m remaining"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m remaining"


class BatchImportManager:
    """Runs one import at a time; re-``initialize`` for the next run.

    Args:
        config: batching / retry policy
        clock: monotonic time source in seconds
        sleep: awaitable sleep used for pause polling, retry and batch delays
        poll_interval: pause busy-poll interval in seconds
    """

    def __init__(
        self,
        config: BatchImportConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        poll_interval: float = PAUSE_POLL_INTERVAL,
    ) -> None:
        self.config = config or BatchImportConfig()
        self._clock = clock
        self._sleep = sleep
        self._poll_interval = poll_interval
        self._subscribers: list[Subscriber] = []
        self._items: tuple[ImportItem, ...] = ()
        self._processor: Processor | None = None
        self._batch_size = self.config.batch_size
        self._state = ImportState.IDLE
        self._started = False
        self._paused = False
        self._cancelled = False
        self._start_time: float | None = None
        self._status = BatchImportStatus()

    # --- observation -----------------------------------------------------

    @property
    def state(self) -> ImportState:
        return self._state

    @property
    def batch_size(self) -> int:
        return self._batch_size

    def get_status(self) -> BatchImportStatus:
        return self._status

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback``; it receives the current status immediately.

        Returns a function that removes the subscription.
        """
        self._subscribers.append(callback)
        self._call_subscriber(callback, self._status)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _call_subscriber(self, callback: Subscriber, status: BatchImportStatus) -> None:
        try:
            callback(status)
        except Exception:
            logger.exception("progress subscriber %r failed", callback)

    def _notify(self) -> None:
        for callback in list(self._subscribers):
            self._call_subscriber(callback, self._status)

    def _update(self, **changes: Any) -> None:
        status = replace(self._status, **changes)
        if self._start_time is not None:
            elapsed = max(self._clock() - self._start_time, 0.0)
            speed = None
            eta = None
            if elapsed >= 1:
                speed = round(status.processed / elapsed, 1)
                if speed > 0:
                    eta = math.ceil(status.remaining / speed)
            status = replace(
                status,
                elapsed_time=elapsed,
                speed=speed,
                estimated_time_remaining=eta,
            )
        if status.total > 0:
            status = replace(status, progress=round(status.processed / status.total * 100))
        self._status = status
        self._notify()

    # --- lifecycle -------------------------------------------------------

    def initialize(self, items: Sequence[ImportItem], processor: Processor) -> None:
        """Store an immutable copy of ``items`` and reset the status.

        Raises:
            BatchImportStateError: a previous run is still running or paused
        """
        if self._state in (ImportState.RUNNING, ImportState.PAUSED):
            raise BatchImportStateError("cannot initialize while an import is running")
        self._items = tuple(replace(item, data=copy.deepcopy(item.data)) for item in items)
        self._processor = processor
        self._batch_size = (
            calculate_optimal_batch_size(len(self._items))
            if self.config.auto_batch_size
            else self.config.batch_size
        )
        self._state = ImportState.IDLE
        self._started = False
        self._paused = False
        self._cancelled = False
        self._start_time = None
        self._status = BatchImportStatus()
        self._update(
            total=len(self._items),
            total_batches=math.ceil(len(self._items) / self._batch_size),
        )
        logger.debug(
            "initialized %d items in %d batches of %d",
            len(self._items), self._status.total_batches, self._batch_size,
        )

    def pause(self) -> None:
        if self._state in (ImportState.COMPLETE, ImportState.CANCELLED):
            return
        self._paused = True
        if self._state is ImportState.RUNNING:
            self._state = ImportState.PAUSED
        self._update(is_paused=True)

    def resume(self) -> None:
        if self._state in (ImportState.COMPLETE, ImportState.CANCELLED):
            return
        self._paused = False
        if self._state is ImportState.PAUSED:
            self._state = ImportState.RUNNING
        self._update(is_paused=False)

    def cancel(self) -> None:
        """Request cancellation; a running import stops before its next batch."""
        if self._state in (ImportState.COMPLETE, ImportState.CANCELLED):
            return
        self._cancelled = True
        if self._state is ImportState.IDLE:
            self._state = ImportState.CANCELLED
            self._update(is_cancelled=True, is_complete=True)
        else:
            self._update(is_cancelled=True)

    def reset(self) -> None:
        if self._state in (ImportState.RUNNING, ImportState.PAUSED):
            raise BatchImportStateError("cannot reset while an import is running")
        self._items = ()
        self._processor = None
        self._batch_size = self.config.batch_size
        self._state = ImportState.IDLE
        self._started = False
        self._paused = False
        self._cancelled = False
        self._start_time = None
        self._status = BatchImportStatus()
        self._notify()

    def dispose(self) -> None:
        self.cancel()
        self._subscribers.clear()

    # --- execution -------------------------------------------------------

    async def _call_processor(self, items: list[ImportItem]) -> BatchOutcome:
        assert self._processor is not None
        if _is_async_callable(self._processor):
            result = self._processor(items)
        else:
            # sync processors run off the event loop
            result = await asyncio.to_thread(self._processor, items)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _retry_wait(self, attempt: int) -> float:
        return self.config.retry_delay * (self.config.retry_backoff ** (attempt - 1))

    async def _process_with_retry(
        self, batch: list[ImportItem]
    ) -> tuple[list[ImportItem], list[tuple[ItemFailure, int]]]:
        """Process one batch; failed items are retried as a sub-batch.

        Returns the succeeded items and (failure, final attempt) pairs.
        """
        pending = batch
        succeeded: list[ImportItem] = []
        failures: list[tuple[ItemFailure, int]] = []
        max_attempts = self.config.retry_attempts + 1

        for attempt in range(1, max_attempts + 1):
            try:
                outcome = await self._call_processor(pending)
                ok_ids = {item.id for item in outcome.succeeded}
                reported = {f.item.id: f for f in outcome.failed}
            except Exception as e:  # a failing processor fails its items, not the run
                message = str(e) or type(e).__name__
                logger.warning("batch %d: processor raised: %s", self._status.current_batch, message)
                failures.extend((ItemFailure(item, message), attempt) for item in pending)
                break

            still_failing: list[ItemFailure] = []
            for item in pending:
                if item.id in ok_ids:
                    succeeded.append(item)
                else:
                    still_failing.append(reported.get(item.id) or ItemFailure(item, _UNREPORTED))

            if not still_failing:
                break
            if attempt == max_attempts:
                failures.extend((f, attempt) for f in still_failing)
                break

            logger.debug(
                "batch %d: retrying %d item(s), attempt %d of %d",
                self._status.current_batch, len(still_failing), attempt + 1, max_attempts,
            )
            self._update(retrying=len(still_failing))
            await self._sleep(self._retry_wait(attempt))
            pending = [f.item for f in still_failing]

        if self._status.retrying:
            self._update(retrying=0)
        return succeeded, failures

    async def start(self) -> BatchImportResult:
        """Run every batch and return the outcome.

        Raises:
            BatchImportStateError: not initialized, nothing to import, already
                started, or cancelled before starting
        """
        if self._processor is None:
            raise BatchImportStateError("import not initialized; call initialize() first")
        if not self._items:
            raise BatchImportStateError("nothing to import")
        if self._started or self._state is not ImportState.IDLE:
            raise BatchImportStateError("start() may only be called once per initialize()")

        self._started = True
        self._state = ImportState.PAUSED if self._paused else ImportState.RUNNING
        self._start_time = self._clock()
        self._update(start_time=self._start_time)

        items = list(self._items)
        size = self._batch_size
        successful: list[ImportItem] = []
        failed: list[ImportItem] = []
        errors: list[BatchImportError] = []
        stats = BatchStatsAccumulator()

        for index in range(0, len(items), size):
            await asyncio.sleep(0)
            if self._cancelled:
                break
            while self._paused and not self._cancelled:
                await self._sleep(self._poll_interval)
            if self._cancelled:
                break

            batch = items[index:index + size]
            self._update(current_batch=index // size + 1)
            began = self._clock()
            ok, failures = await self._process_with_retry(batch)
            stats.add_batch_time(self._clock() - began)

            successful.extend(ok)
            new_errors = []
            for failure, attempt in failures:
                failed.append(failure.item)
                new_errors.append(BatchImportError(
                    item_id=failure.item.id,
                    item_type=failure.item.type,
                    attempt=attempt,
                    error=failure.error,
                    data=MappingProxyType(copy.deepcopy(failure.item.data)),
                ))
            errors.extend(new_errors)
            self._update(
                processed=self._status.processed + len(batch),
                succeeded=self._status.succeeded + len(ok),
                failed=self._status.failed + len(failures),
                errors=self._status.errors + tuple(new_errors),
            )

            if index + size < len(items) and self.config.delay_between_batches > 0:
                await self._sleep(self.config.delay_between_batches)

        self._state = ImportState.CANCELLED if self._cancelled else ImportState.COMPLETE
        self._update(is_complete=True, is_cancelled=self._cancelled, is_paused=False)
        total_batches, avg, p95 = stats.get_stats()
        logger.debug(
            "import finished: %d succeeded, %d failed, cancelled=%s",
            len(successful), len(failed), self._cancelled,
        )
        return BatchImportResult(
            success=not failed and not self._cancelled,
            status=self._status,
            successful_items=tuple(successful),
            failed_items=tuple(failed),
            errors=tuple(errors),
            total_batches=total_batches,
            avg_batch_seconds=avg,
            p95_batch_seconds=p95,
        )
