from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

from ..models.batch_status import BatchImportStatus
from .batch_manager import format_eta

"""Progress display with tqdm (TTY only).

``BatchProgressBar`` is a batch manager subscriber: every status snapshot moves
the bar to ``processed`` and refreshes the succeeded / failed / ETA postfix.
In non-TTY environments (CI, pipes) no bar is created, so the log output stays
free of control sequences.
"""

__all__ = [
    "BatchProgressBar",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class BatchProgressBar:
    """tqdm bar driven by ``BatchImportStatus`` snapshots."""

    def __init__(self, description: str = "Importing", *, enabled: bool | None = None) -> None:
        self.description = description
        self.enabled = is_tty_enabled() if enabled is None else enabled
        self.pbar: TqdmType[Any] | None = None
        self._shown = 0

    def _ensure_bar(self, total: int) -> TqdmType[Any]:
        if self.pbar is None:
            self.pbar = tqdm(
                total=total,
                desc=self.description,
                unit="item",
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        return self.pbar

    def __call__(self, status: BatchImportStatus) -> None:
        if not self.enabled or status.total == 0:
            return
        pbar = self._ensure_bar(status.total)
        delta = status.processed - self._shown
        if delta > 0:
            pbar.update(delta)
            self._shown = status.processed
        pbar.set_postfix(
            ok=status.succeeded,
            failed=status.failed,
            batch=f"{status.current_batch}/{status.total_batches}",
            eta=format_eta(status.estimated_time_remaining),
        )
        if status.is_complete:
            self.close()

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> BatchProgressBar:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
