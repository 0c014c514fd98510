from __future__ import annotations

from collections.abc import Iterable, Sequence

from ..models.import_item import EntitySummary, ImportItem, ImportSummary, OperationType
from ..models.rows import SheetRow, normalize_code

"""Operation classification: CREATE vs UPDATE by code lookup.

Runs after validation and duplicate resolution, when codes are unique and the
hierarchy is acyclic. Matching is on the normalised (trimmed, lower-cased)
code on both sides.
"""

__all__ = [
    "classify",
    "summarize",
]


def classify(rows: Sequence[SheetRow], existing_codes: Iterable[str]) -> list[ImportItem]:
    existing = {normalize_code(c) for c in existing_codes}
    items: list[ImportItem] = []
    for row in rows:
        operation = (
            OperationType.UPDATE if normalize_code(row.code) in existing else OperationType.CREATE
        )
        item_type = row.kind.item_type
        items.append(ImportItem(
            id=f"{item_type}-{row.row}",
            type=item_type,
            operation=operation,
            data=row.to_data(),
            row=row.row,
        ))
    return items


def _entity(items: list[ImportItem]) -> EntitySummary:
    creates = sum(1 for i in items if i.operation is OperationType.CREATE)
    return EntitySummary(total=len(items), creates=creates, updates=len(items) - creates)


def summarize(items: Iterable[ImportItem]) -> ImportSummary:
    """Per-type CREATE / UPDATE counts for the preview."""
    items = list(items)
    return ImportSummary(
        total_rows=len(items),
        departments=_entity([i for i in items if i.type == "department"]),
        positions=_entity([i for i in items if i.type == "position"]),
    )
