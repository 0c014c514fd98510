from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from ..models.duplicates import (
    DuplicateDetectionResult,
    DuplicateEntry,
    DuplicateGroup,
    DuplicateResolution,
    DuplicateRowInfo,
    DuplicateStrategy,
)
from ..models.rows import SheetKind, SheetRow, normalize_code
from ..models.workbook import ParsedWorkbook

"""Duplicate detection and resolution.

Detection is advisory: it groups rows sharing a normalised code, scores each
row and recommends a strategy, but never drops data. Resolution turns an
entry plus a chosen strategy into keep / remove decisions (and merged data),
and ``apply_resolutions`` is the only step that actually removes rows.
"""

__all__ = [
    "detect_duplicates",
    "detect_all",
    "resolve_duplicate",
    "auto_resolve_all",
    "apply_resolutions",
    "strategy_label",
    "strategy_description",
    "REASON_IDENTICAL",
    "REASON_ONE_COMPLETE",
    "REASON_MULTIPLE_COMPLETE",
    "REASON_COMBINE",
]

logger = logging.getLogger(__name__)

REASON_IDENTICAL = "All entries are identical"
REASON_ONE_COMPLETE = "One entry is more complete than others"
REASON_MULTIPLE_COMPLETE = "Multiple complete entries with different data"
REASON_COMBINE = "Entries have different information that should be combined"

_STRATEGY_LABELS = {
    DuplicateStrategy.KEEP_FIRST: "Keep First",
    DuplicateStrategy.KEEP_LAST: "Keep Last",
    DuplicateStrategy.KEEP_ALL: "Keep All",
    DuplicateStrategy.MERGE: "Merge Data",
    DuplicateStrategy.MANUAL: "Manual Review",
}
_STRATEGY_DESCRIPTIONS = {
    DuplicateStrategy.KEEP_FIRST: "Keep the first occurrence and remove all others",
    DuplicateStrategy.KEEP_LAST: "Keep the last occurrence and remove all others",
    DuplicateStrategy.KEEP_ALL: "Import all duplicates (will create multiple records)",
    DuplicateStrategy.MERGE: "Combine data from all duplicates into one complete record",
    DuplicateStrategy.MANUAL: "Review and decide manually for each duplicate",
}


def _filled(value: Any) -> bool:
    return value is not None and value != ""


def _completeness(data: Mapping[str, Any]) -> int:
    if not data:
        return 0
    filled = sum(1 for v in data.values() if _filled(v))
    return math.floor(filled / len(data) * 100 + 0.5)  # half up


def _differences(data: Mapping[str, Any], siblings: Iterable[Mapping[str, Any]]) -> tuple[str, ...]:
    diffs: set[str] = set()
    for other in siblings:
        for key in data.keys() | other.keys():
            if data.get(key) != other.get(key):
                diffs.add(key)
    diffs.discard("row")
    return tuple(sorted(diffs))


def _recommend(rows: Sequence[DuplicateRowInfo]) -> tuple[DuplicateStrategy, str]:
    if all(not r.differences for r in rows):
        return DuplicateStrategy.KEEP_FIRST, REASON_IDENTICAL
    complete = sum(1 for r in rows if r.is_complete)
    if complete == 1:
        return DuplicateStrategy.KEEP_FIRST, REASON_ONE_COMPLETE
    if complete > 1:
        return DuplicateStrategy.MERGE, REASON_MULTIPLE_COMPLETE
    return DuplicateStrategy.MERGE, REASON_COMBINE


def detect_duplicates(rows: Sequence[SheetRow], kind: SheetKind | str | None = None) -> list[DuplicateEntry]:
    """Group rows by trimmed, lower-cased code and analyse every group of two or more.

    Rows inside an entry are ordered by descending completeness; ties keep
    source order. Rows without a code are ignored.
    """
    if not rows:
        return []
    kind = SheetKind(kind) if kind is not None else rows[0].kind

    groups: dict[str, list[SheetRow]] = {}
    for row in rows:
        key = normalize_code(row.code)
        if not key:
            continue
        groups.setdefault(key, []).append(row)

    entries: list[DuplicateEntry] = []
    for key, members in groups.items():
        if len(members) < 2:
            continue
        datas = [m.to_data() for m in members]
        infos: list[DuplicateRowInfo] = []
        for i, (member, data) in enumerate(zip(members, datas, strict=True)):
            siblings = [d for j, d in enumerate(datas) if j != i]
            infos.append(DuplicateRowInfo(
                row_number=member.row,
                data=data,
                is_complete=all(_filled(data.get(f)) for f in member.required_fields),
                completeness=_completeness(data),
                has_description=_filled(data.get("description")),
                differences=_differences(data, siblings),
            ))
        strategy, reason = _recommend(infos)
        ordered = tuple(sorted(infos, key=lambda r: r.completeness, reverse=True))
        entries.append(DuplicateEntry(
            sheet=kind,
            key=key,
            value=str(ordered[0].data.get("code", key)),
            rows=ordered,
            recommended_strategy=strategy,
            reason=reason,
        ))
    if entries:
        logger.debug("%s: %d duplicate code group(s)", kind.value, len(entries))
    return entries


def detect_all(workbook: ParsedWorkbook) -> DuplicateDetectionResult:
    departments = detect_duplicates(workbook.departments, SheetKind.DEPARTMENTS)
    positions = detect_duplicates(workbook.positions, SheetKind.POSITIONS)
    return DuplicateDetectionResult(
        departments=DuplicateGroup(SheetKind.DEPARTMENTS, tuple(departments)),
        positions=DuplicateGroup(SheetKind.POSITIONS, tuple(positions)),
    )


def _merge(rows: Sequence[DuplicateRowInfo]) -> dict[str, Any]:
    merged = dict(rows[0].data)
    for info in rows[1:]:
        for key, value in info.data.items():
            if not _filled(merged.get(key)) and _filled(value):
                merged[key] = value
    return merged


def resolve_duplicate(entry: DuplicateEntry, strategy: DuplicateStrategy | str) -> DuplicateResolution:
    """Decide which rows of ``entry`` survive under ``strategy``.

    Pure: the same (entry, strategy) pair always yields an equal resolution.
    """
    strategy = DuplicateStrategy(strategy)
    numbers = tuple(entry.row_numbers)
    merged: dict[str, Any] | None = None

    if strategy is DuplicateStrategy.KEEP_FIRST:
        keep, remove = numbers[:1], numbers[1:]
    elif strategy is DuplicateStrategy.KEEP_LAST:
        keep, remove = numbers[-1:], numbers[:-1]
    elif strategy is DuplicateStrategy.MERGE:
        # rows are completeness-sorted, so row 0 is the base
        keep, remove = numbers[:1], numbers[1:]
        merged = _merge(entry.rows)
    else:  # keep-all, manual
        keep, remove = numbers, ()

    return DuplicateResolution(
        sheet=entry.sheet,
        key=entry.key,
        value=entry.value,
        strategy=strategy,
        keep_rows=keep,
        remove_rows=remove,
        merged_data=merged,
        field=entry.field,
    )


def auto_resolve_all(result: DuplicateDetectionResult) -> list[DuplicateResolution]:
    """Resolve every entry with its recommended strategy, departments first."""
    return [
        resolve_duplicate(entry, entry.recommended_strategy)
        for group in (result.departments, result.positions)
        for entry in group.duplicates
    ]


def apply_resolutions(
    rows: Sequence[SheetRow], resolutions: Iterable[DuplicateResolution]
) -> list[SheetRow]:
    """Drop removed rows and substitute merged data; source order is preserved.

    Only resolutions matching the rows' sheet are applied.
    """
    if not rows:
        return []
    kind = rows[0].kind
    removed: set[int] = set()
    merged_by_row: dict[int, dict[str, Any]] = {}
    for res in resolutions:
        if res.sheet is not kind:
            continue
        removed.update(res.remove_rows)
        if res.merged_data is not None and res.keep_rows:
            merged_by_row[res.keep_rows[0]] = res.merged_data

    result: list[SheetRow] = []
    for row in rows:
        if row.row in removed:
            continue
        merged = merged_by_row.get(row.row)
        result.append(row.with_data(merged) if merged is not None else row)
    return result


def strategy_label(strategy: DuplicateStrategy | str) -> str:
    return _STRATEGY_LABELS[DuplicateStrategy(strategy)]


def strategy_description(strategy: DuplicateStrategy | str) -> str:
    return _STRATEGY_DESCRIPTIONS[DuplicateStrategy(strategy)]
