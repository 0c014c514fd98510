from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .rows import SheetKind

"""Duplicate detection / resolution models.

``DuplicateEntry.rows`` is always ordered by descending completeness (most
complete first). ``keep-first`` and ``merge`` rely on that ordering.
"""

__all__ = [
    "DuplicateStrategy",
    "DuplicateRowInfo",
    "DuplicateEntry",
    "DuplicateGroup",
    "DuplicateResolution",
    "DuplicateDetectionResult",
]


class DuplicateStrategy(Enum):
    KEEP_FIRST = "keep-first"
    KEEP_LAST = "keep-last"
    KEEP_ALL = "keep-all"
    MERGE = "merge"
    MANUAL = "manual"


@dataclass(frozen=True)
class DuplicateRowInfo:
    row_number: int
    data: dict[str, Any]
    is_complete: bool  # every required field is present
    completeness: int  # 0-100, share of non-empty fields
    has_description: bool
    differences: tuple[str, ...] = ()  # fields that disagree with a sibling row


@dataclass(frozen=True)
class DuplicateEntry:
    """A group of two or more rows sharing the same normalised code."""
    sheet: SheetKind
    key: str  # normalised code
    value: str  # code as written in the most complete row
    rows: tuple[DuplicateRowInfo, ...]
    recommended_strategy: DuplicateStrategy
    reason: str
    field: str = "code"

    @property
    def row_numbers(self) -> list[int]:
        return [r.row_number for r in self.rows]


@dataclass(frozen=True)
class DuplicateGroup:
    """All duplicate entries of one sheet."""
    sheet: SheetKind
    duplicates: tuple[DuplicateEntry, ...] = ()

    @property
    def total_duplicates(self) -> int:
        return len(self.duplicates)

    @property
    def affected_rows(self) -> int:
        return sum(len(d.rows) for d in self.duplicates)


@dataclass(frozen=True)
class DuplicateResolution:
    """Outcome of applying a strategy to one duplicate entry."""
    sheet: SheetKind
    key: str
    value: str
    strategy: DuplicateStrategy
    keep_rows: tuple[int, ...]
    remove_rows: tuple[int, ...]
    merged_data: dict[str, Any] | None = None  # only for merge
    field: str = "code"


@dataclass(frozen=True)
class DuplicateDetectionResult:
    departments: DuplicateGroup = field(default_factory=lambda: DuplicateGroup(SheetKind.DEPARTMENTS))
    positions: DuplicateGroup = field(default_factory=lambda: DuplicateGroup(SheetKind.POSITIONS))

    @property
    def has_duplicates(self) -> bool:
        return self.total_duplicates > 0

    @property
    def total_duplicates(self) -> int:
        return self.departments.total_duplicates + self.positions.total_duplicates

    @property
    def total_affected_rows(self) -> int:
        return self.departments.affected_rows + self.positions.affected_rows

    @property
    def auto_resolvable(self) -> int:
        """Entries whose recommendation needs no merge or review."""
        simple = (DuplicateStrategy.KEEP_FIRST, DuplicateStrategy.KEEP_LAST)
        return sum(
            1
            for group in (self.departments, self.positions)
            for d in group.duplicates
            if d.recommended_strategy in simple
        )
