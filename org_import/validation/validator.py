from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from ..models.import_item import ExistingCodes
from ..models.rows import EMPTY_PARENT_MARKERS, SheetKind, SheetRow, is_blank
from ..models.validation import ErrorSeverity, ErrorType, ValidationError
from ..models.workbook import ParsedWorkbook

"""Structural & referential validation of parsed rows.

Checks, in order:
- required fields (code + display name, positions also dept_code)
- department metadata must be valid JSON
- duplicate codes inside the file (exact match, one ERROR per occurrence)
- parent / manager references resolve to the file or to known codes
- position department references resolve to known departments
- more than one root department (WARNING)
- hierarchy: cycles over in-file edges and the maximum depth

Every function here is pure: no I/O, rows are never modified, and problems are
returned as ``ValidationError`` values instead of being raised.
"""

__all__ = [
    "MAX_HIERARCHY_DEPTH",
    "HierarchyAnalysis",
    "analyze_hierarchy",
    "validate",
    "validate_workbook",
    "validate_required_fields",
    "validate_metadata",
    "validate_duplicate_codes",
    "validate_references",
    "validate_department_references",
    "validate_root_departments",
    "validate_hierarchy",
    "has_blocking_errors",
]

MAX_HIERARCHY_DEPTH = 20

_UNVISITED = 0
_IN_PROGRESS = 1
_DONE = 2

_FIELD_LABELS = {
    SheetKind.DEPARTMENTS: {
        "code": "Department code",
        "name": "Department name",
    },
    SheetKind.POSITIONS: {
        "code": "Position code",
        "title": "Position title",
        "department_code": "Department code",
    },
}

_FIELD_SUGGESTIONS = {
    "code": "Provide a unique code",
    "name": "Provide a department name",
    "title": "Provide a position title",
    "department_code": "Provide a valid department code",
}


def _reference(row: SheetRow) -> str | None:
    ref = row.reference_code
    if ref is None:
        return None
    ref = str(ref).strip()
    if ref in EMPTY_PARENT_MARKERS:
        return None
    return ref


def _sheet_of(rows: Sequence[SheetRow]) -> SheetKind:
    return rows[0].kind


def validate_required_fields(rows: Sequence[SheetRow]) -> list[ValidationError]:
    errors: list[ValidationError] = []
    for row in rows:
        labels = _FIELD_LABELS[row.kind]
        for name in row.required_fields:
            if not is_blank(getattr(row, name)):
                continue
            errors.append(ValidationError(
                severity=ErrorSeverity.ERROR,
                error_type=ErrorType.MISSING_REQUIRED_FIELD,
                message=f"{labels[name]} is required",
                sheet=row.kind,
                row=row.row,
                field=name,
                suggestion=_FIELD_SUGGESTIONS[name],
            ))
    return errors


def validate_metadata(rows: Sequence[SheetRow]) -> list[ValidationError]:
    """Department metadata kept as text must still parse as JSON."""
    errors: list[ValidationError] = []
    for row in rows:
        metadata = getattr(row, "metadata", None)
        if not isinstance(metadata, str) or is_blank(metadata):
            continue
        try:
            json.loads(metadata)
        except ValueError:
            errors.append(ValidationError(
                severity=ErrorSeverity.ERROR,
                error_type=ErrorType.INVALID_JSON,
                message="Invalid JSON in metadata field",
                sheet=row.kind,
                row=row.row,
                field="metadata",
                suggestion="Ensure metadata is valid JSON or leave it empty",
            ))
    return errors


def validate_duplicate_codes(rows: Sequence[SheetRow]) -> list[ValidationError]:
    seen: dict[str, list[SheetRow]] = {}
    for row in rows:
        if is_blank(row.code):
            continue
        seen.setdefault(row.code, []).append(row)

    errors: list[ValidationError] = []
    for code, dupes in seen.items():
        if len(dupes) < 2:
            continue
        for row in dupes:
            errors.append(ValidationError(
                severity=ErrorSeverity.ERROR,
                error_type=ErrorType.DUPLICATE_CODE_IN_FILE,
                message=f"Duplicate {row.kind.item_type} code '{code}' found in file",
                sheet=row.kind,
                row=row.row,
                field="code",
                suggestion=f"Each {row.kind.item_type} code must be unique",
                affected_codes=(code,),
            ))
    return errors


def validate_references(
    rows: Sequence[SheetRow],
    valid_codes: Iterable[str] = (),
    existing_codes: Iterable[str] = (),
) -> list[ValidationError]:
    """Every parent / manager reference must name a code in the file or a known code."""
    known = {row.code for row in rows if not is_blank(row.code)}
    known.update(valid_codes)
    known.update(existing_codes)

    errors: list[ValidationError] = []
    for row in rows:
        ref = _reference(row)
        if ref is None or ref in known:
            continue
        if row.kind is SheetKind.DEPARTMENTS:
            message = f"Parent department '{ref}' does not exist"
            suggestion = "Ensure the parent department exists in the file or database"
        else:
            message = f"Reporting position '{ref}' does not exist"
            suggestion = "Ensure the reporting position exists in the file or database"
        errors.append(ValidationError(
            severity=ErrorSeverity.ERROR,
            error_type=ErrorType.INVALID_REFERENCE,
            message=message,
            sheet=row.kind,
            row=row.row,
            field=row.reference_field,
            suggestion=suggestion,
            affected_codes=(row.code, ref),
        ))
    return errors


def validate_department_references(
    rows: Sequence[SheetRow], department_codes: Iterable[str]
) -> list[ValidationError]:
    """Positions must belong to a department from the file or the database."""
    departments = set(department_codes)
    errors: list[ValidationError] = []
    for row in rows:
        dept = getattr(row, "department_code", None)
        if is_blank(dept) or dept in departments:
            continue
        errors.append(ValidationError(
            severity=ErrorSeverity.ERROR,
            error_type=ErrorType.INVALID_REFERENCE,
            message=f"Department '{dept}' does not exist",
            sheet=row.kind,
            row=row.row,
            field="department_code",
            suggestion="Ensure the department exists in the file or database",
            affected_codes=(row.code, dept),
        ))
    return errors


def validate_root_departments(rows: Sequence[SheetRow]) -> list[ValidationError]:
    roots = [r for r in rows if not is_blank(r.code) and _reference(r) is None]
    if len(roots) <= 1:
        return []
    codes = tuple(r.code for r in roots)
    return [ValidationError(
        severity=ErrorSeverity.WARNING,
        error_type=ErrorType.BUSINESS_RULE,
        message=f"Multiple root departments found ({len(roots)}): {', '.join(codes)}",
        sheet=SheetKind.DEPARTMENTS,
        row=roots[0].row,
        field="parent_code",
        suggestion="Typically one top-level department owns all others",
        affected_codes=codes,
    )]


@dataclass(frozen=True)
class HierarchyAnalysis:
    """Result of walking the in-file parent graph.

    ``depths`` maps each code to its hop count from the nearest root (a row
    without parent or whose parent lives outside the file has depth 0). Codes
    on a cycle, or leading into one, map to None.
    """
    depths: dict[str, int | None] = field(default_factory=dict)
    cycles: list[tuple[str, ...]] = field(default_factory=list)  # A, B, C, A
    closing_rows: list[SheetRow] = field(default_factory=list)  # one per cycle


def analyze_hierarchy(rows: Sequence[SheetRow]) -> HierarchyAnalysis:
    """Iterative three-colour walk over the parent / manager graph.

    Each node has at most one outgoing edge, so a walk is a simple path. It
    stops at a root, at a reference leaving the file, at an already finished
    node, or when it re-enters a node still in progress (a cycle).
    """
    row_of: dict[str, SheetRow] = {}
    parent_of: dict[str, str] = {}
    for row in rows:
        code = row.code
        if is_blank(code) or code in row_of:
            continue  # first occurrence of a duplicated code wins
        row_of[code] = row
        ref = _reference(row)
        if ref is not None:
            parent_of[code] = ref

    colour = dict.fromkeys(row_of, _UNVISITED)
    depths: dict[str, int | None] = {}
    cycles: list[tuple[str, ...]] = []
    closing_rows: list[SheetRow] = []

    for start in row_of:
        if colour[start] != _UNVISITED:
            continue
        path: list[str] = []
        position: dict[str, int] = {}
        node = start
        while True:
            colour[node] = _IN_PROGRESS
            position[node] = len(path)
            path.append(node)
            parent = parent_of.get(node)

            if parent is None or parent not in row_of:
                base: int | None = -1  # path[-1] becomes depth 0
                break
            if colour[parent] == _IN_PROGRESS:
                cycle = tuple(path[position[parent]:]) + (parent,)
                cycles.append(cycle)
                closing_rows.append(row_of[node])
                base = None
                break
            if colour[parent] == _DONE:
                base = depths[parent]
                break
            node = parent

        for offset, code in enumerate(reversed(path), start=1):
            depths[code] = None if base is None else base + offset
            colour[code] = _DONE

    return HierarchyAnalysis(depths=depths, cycles=cycles, closing_rows=closing_rows)


def validate_hierarchy(
    rows: Sequence[SheetRow], max_depth: int = MAX_HIERARCHY_DEPTH
) -> list[ValidationError]:
    """Report every cycle once and every branch that grows beyond ``max_depth``."""
    if not rows:
        return []
    kind = _sheet_of(rows)
    analysis = analyze_hierarchy(rows)
    label = "Department hierarchy" if kind is SheetKind.DEPARTMENTS else "Reporting line"
    field_name = "parent_code" if kind is SheetKind.DEPARTMENTS else "reports_to_code"

    errors: list[ValidationError] = []
    for cycle, closing in zip(analysis.cycles, analysis.closing_rows, strict=True):
        errors.append(ValidationError(
            severity=ErrorSeverity.ERROR,
            error_type=ErrorType.CIRCULAR_REFERENCE,
            message=f"{label} has a circular reference: {' → '.join(cycle)}",
            sheet=kind,
            row=closing.row,
            field=field_name,
            suggestion="Remove the circular reference by changing parent/reporting relationships",
            affected_codes=cycle[:-1],
        ))

    # Depth grows by one per hop, so everything deeper hangs below a node at
    # exactly max_depth + 1; that node is the one reported.
    seen: set[str] = set()
    for row in rows:
        if row.code in seen:
            continue
        seen.add(row.code)
        if analysis.depths.get(row.code) != max_depth + 1:
            continue
        errors.append(ValidationError(
            severity=ErrorSeverity.ERROR,
            error_type=ErrorType.HIERARCHY_TOO_DEEP,
            message=(
                f"{label} below '{row.code}' is deeper than the maximum of "
                f"{max_depth} levels"
            ),
            sheet=kind,
            row=row.row,
            field=field_name,
            suggestion="Flatten the hierarchy or attach this branch higher up",
            affected_codes=(row.code,),
        ))
    return errors


def validate(
    rows: Sequence[SheetRow],
    valid_codes: Iterable[str] = (),
    existing_codes: Iterable[str] = (),
    *,
    department_codes: Iterable[str] | None = None,
    max_depth: int = MAX_HIERARCHY_DEPTH,
) -> list[ValidationError]:
    """Run every check on the rows of one sheet.

    Parameters
    ----------
    rows: rows of a single sheet kind
    valid_codes: extra codes a parent / manager reference may resolve to
    existing_codes: codes already persisted; they are valid references and act
        as non-cyclic leaves of the hierarchy
    department_codes: for positions, the departments a position may belong to
        (file + database); None skips that check
    max_depth: deepest allowed hierarchy level
    """
    if not rows:
        return []
    existing = set(existing_codes)
    kind = _sheet_of(rows)

    errors: list[ValidationError] = []
    errors.extend(validate_required_fields(rows))
    if kind is SheetKind.DEPARTMENTS:
        errors.extend(validate_metadata(rows))
    errors.extend(validate_duplicate_codes(rows))
    errors.extend(validate_references(rows, valid_codes, existing))
    if kind is SheetKind.POSITIONS and department_codes is not None:
        errors.extend(validate_department_references(rows, department_codes))
    if kind is SheetKind.DEPARTMENTS:
        errors.extend(validate_root_departments(rows))
    errors.extend(validate_hierarchy(rows, max_depth))
    return errors


def validate_workbook(
    workbook: ParsedWorkbook,
    existing: ExistingCodes | None = None,
    *,
    max_depth: int = MAX_HIERARCHY_DEPTH,
) -> list[ValidationError]:
    """Validate both sheets; positions may reference departments from the file."""
    existing = existing or ExistingCodes()
    errors = validate(
        workbook.departments,
        existing_codes=existing.departments,
        max_depth=max_depth,
    )
    department_codes = {d.code for d in workbook.departments} | set(existing.departments)
    errors.extend(validate(
        workbook.positions,
        existing_codes=existing.positions,
        department_codes=department_codes,
        max_depth=max_depth,
    ))
    return errors


def has_blocking_errors(errors: Iterable[ValidationError]) -> bool:
    return any(e.is_error for e in errors)
