from __future__ import annotations

from collections.abc import Sequence

from ..models.rows import SheetRow
from ..validation.validator import analyze_hierarchy

"""Parent-before-child ordering of validated rows.

A row's parent (or manager) must exist before the row is created, so rows are
persisted level by level: roots and rows hanging off codes outside the file
first, then their in-file children. Order within a level is the source order.
"""

__all__ = [
    "order_by_hierarchy",
    "hierarchy_depths",
]


def hierarchy_depths(rows: Sequence[SheetRow]) -> dict[str, int | None]:
    """Hop depth per code (0 = root); None for codes on or leading into a cycle."""
    return analyze_hierarchy(rows).depths


def order_by_hierarchy(rows: Sequence[SheetRow]) -> list[SheetRow]:
    depths = hierarchy_depths(rows)
    last = len(rows) + 1  # cyclic rows sort after every real level

    def level(row: SheetRow) -> int:
        depth = depths.get(row.code)
        return last if depth is None else depth

    return sorted(rows, key=level)
