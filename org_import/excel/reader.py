from __future__ import annotations

import io
import json
import logging
import math
import re
from pathlib import Path
from typing import Any

import pandas as pd

from ..models.rows import EMPTY_PARENT_MARKERS, DepartmentRow, PositionRow, SheetKind
from ..models.workbook import ParsedWorkbook

"""Spreadsheet reader for department / position uploads.

Layout: header on the first line, data from the second line on; row numbers
reported downstream are spreadsheet lines (first data row = 2). Fully empty
lines are skipped but still count for numbering.

Cells are read as text (``dtype=str``) with only empty cells treated as NA, so
codes such as ``NA`` or ``001`` survive unchanged.
"""

__all__ = [
    "WorkbookError",
    "SheetHeaderError",
    "MissingColumnsError",
    "EmptySheetError",
    "parse_workbook",
    "check_upload",
    "write_template",
    "SUPPORTED_EXTENSIONS",
    "MAX_FILE_SIZE",
    "MIN_FILE_SIZE",
    "MAX_ROWS_PER_SHEET",
]

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".xlsx", ".xls", ".xlsm")
MAX_FILE_SIZE = 10 * 1024 * 1024
MIN_FILE_SIZE = 100
MAX_ROWS_PER_SHEET = 10_000
WARN_ROWS_THRESHOLD = 1_000

_SHEET_ALIASES = {
    SheetKind.DEPARTMENTS: ("departments", "department", "depts", "dept"),
    SheetKind.POSITIONS: ("positions", "position", "pos"),
}

# spreadsheet column -> row attribute
_DEPARTMENT_COLUMNS = {
    "dept_code": "code",
    "name": "name",
    "parent_dept_code": "parent_code",
    "metadata": "metadata",
}
_POSITION_COLUMNS = {
    "pos_code": "code",
    "title": "title",
    "dept_code": "department_code",
    "reports_to_pos_code": "reports_to_code",
    "is_manager": "is_manager",
    "is_active": "is_active",
    "incumbents_count": "incumbents_count",
}
_REQUIRED_COLUMNS = {
    SheetKind.DEPARTMENTS: ("dept_code", "name"),
    SheetKind.POSITIONS: tuple(_POSITION_COLUMNS),
}

_TRUE_STRINGS = frozenset({"true", "yes", "1"})


class WorkbookError(Exception):
    """Raised when an upload cannot be read as an import workbook."""


class SheetHeaderError(WorkbookError):
    """Raised when the header line is missing or blank."""


class MissingColumnsError(WorkbookError):
    """Raised when required columns are missing from the header."""


class EmptySheetError(WorkbookError):
    """Raised when a sheet has a header but no data rows."""


def check_upload(path: Path | str) -> None:
    """File-level checks performed before the workbook is opened.

    Raises:
        WorkbookError: missing file, unsupported extension, or a size outside
            MIN_FILE_SIZE..MAX_FILE_SIZE
    """
    path = Path(path)
    if not path.is_file():
        raise WorkbookError(f"file not found: {path}")
    if path.suffix.lower() not in SUPPORTED_EXTENSIONS:
        raise WorkbookError(
            f"unsupported file type '{path.suffix}': expected one of {', '.join(SUPPORTED_EXTENSIONS)}"
        )
    size = path.stat().st_size
    if size < MIN_FILE_SIZE:
        raise WorkbookError(f"file is too small to be a valid Excel file ({size} bytes)")
    if size > MAX_FILE_SIZE:
        raise WorkbookError(
            f"file is too large ({size} bytes); the maximum is {MAX_FILE_SIZE // (1024 * 1024)} MB"
        )


def _normalize_header(name: Any) -> str:
    text = str(name).strip().lower()
    return re.sub(r"\s+", "_", text)


def _select_sheet(sheet_names: list[str], kind: SheetKind) -> str:
    by_lower = {str(n).strip().lower(): n for n in sheet_names}
    for alias in _SHEET_ALIASES[kind]:
        if alias in by_lower:
            return by_lower[alias]
    return sheet_names[0]


def _is_na(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, float) and math.isnan(value)


def _text(value: Any) -> str:
    if _is_na(value):
        return ""
    return str(value).strip()


def _optional_code(value: Any) -> str | None:
    text = _text(value)
    if text in EMPTY_PARENT_MARKERS:
        return None
    return text


def _parse_bool(value: Any, default: bool) -> bool:
    text = _text(value)
    if text == "":
        return default
    return text.lower() in _TRUE_STRINGS


def _parse_int(value: Any) -> int:
    text = _text(value)
    if text == "":
        return 0
    try:
        return math.floor(float(text))
    except (ValueError, OverflowError):
        return 0


def _parse_metadata(value: Any) -> dict[str, Any] | list[Any] | str | None:
    text = _text(value)
    if text == "":
        return None
    try:
        decoded = json.loads(text)
    except ValueError:
        return text  # left for the validator to report
    # JSON scalars stay as their source text
    return decoded if isinstance(decoded, (dict, list)) else text


def _extra(record: dict[str, Any], known: dict[str, str]) -> dict[str, Any]:
    return {k: _text(v) or None for k, v in record.items() if k not in known}


def _department(line: int, record: dict[str, Any]) -> DepartmentRow:
    return DepartmentRow(
        row=line,
        code=_text(record.get("dept_code")),
        name=_text(record.get("name")),
        parent_code=_optional_code(record.get("parent_dept_code")),
        metadata=_parse_metadata(record.get("metadata")),
        extra=_extra(record, _DEPARTMENT_COLUMNS),
    )


def _position(line: int, record: dict[str, Any]) -> PositionRow:
    return PositionRow(
        row=line,
        code=_text(record.get("pos_code")),
        title=_text(record.get("title")),
        department_code=_text(record.get("dept_code")),
        reports_to_code=_optional_code(record.get("reports_to_pos_code")),
        is_manager=_parse_bool(record.get("is_manager"), default=False),
        is_active=_parse_bool(record.get("is_active"), default=True),
        incumbents_count=_parse_int(record.get("incumbents_count")),
        extra=_extra(record, _POSITION_COLUMNS),
    )


def _read_frame(source: Path | str | bytes, kind: SheetKind) -> tuple[str, pd.DataFrame]:
    handle = io.BytesIO(source) if isinstance(source, bytes) else source
    try:
        xls = pd.ExcelFile(handle)
    except FileNotFoundError as e:
        raise WorkbookError(f"file not found: {source}") from e
    except Exception as e:  # pandas / openpyxl / xlrd raise many unrelated types
        raise WorkbookError(f"failed to read Excel file: {e}") from e

    if not xls.sheet_names:
        raise WorkbookError("invalid Excel file: no sheets found")
    sheet = _select_sheet([str(n) for n in xls.sheet_names], kind)
    df = xls.parse(sheet, header=None, dtype=str, keep_default_na=False, na_values=[""])
    return sheet, df


def parse_workbook(
    source: Path | str | bytes,
    sheet_kind: SheetKind | str,
    *,
    source_name: str | None = None,
) -> ParsedWorkbook:
    """Parse one sheet of an uploaded workbook into typed rows.

    Parameters
    ----------
    source: file path or the raw bytes of the upload
    sheet_kind: which sheet to read; picks the sheet named after the kind
        (``Departments`` / ``dept`` ...) or else the first sheet
    source_name: file name recorded on the result (defaults to the path name)
    """
    kind = SheetKind(sheet_kind)
    if source_name is None:
        source_name = Path(source).name if not isinstance(source, bytes) else "<upload>"
    sheet, df = _read_frame(source, kind)

    if df.shape[0] < 1 or df.iloc[0].isna().all():
        raise SheetHeaderError(f"sheet '{sheet}' has no header row")
    columns = [_normalize_header(c) if not _is_na(c) else "" for c in df.iloc[0].tolist()]
    missing = [c for c in _REQUIRED_COLUMNS[kind] if c not in columns]
    if missing:
        raise MissingColumnsError(
            f"missing required columns in {kind.value} sheet '{sheet}': {', '.join(missing)}"
        )

    build = _department if kind is SheetKind.DEPARTMENTS else _position
    rows = []
    for offset, raw in enumerate(df.iloc[1:].itertuples(index=False, name=None)):
        if all(_is_na(v) for v in raw):
            continue
        record = {col: val for col, val in zip(columns, raw, strict=False) if col}
        rows.append(build(offset + 2, record))

    if not rows:
        raise EmptySheetError(f"Excel file contains no {kind.item_type} data")
    if len(rows) > MAX_ROWS_PER_SHEET:
        raise WorkbookError(
            f"sheet '{sheet}' has {len(rows)} rows; the maximum is {MAX_ROWS_PER_SHEET}"
        )
    if len(rows) > WARN_ROWS_THRESHOLD:
        logger.warning("sheet '%s' has %d rows; the import may take a while", sheet, len(rows))
    logger.debug("parsed %d %s rows from sheet '%s'", len(rows), kind.value, sheet)

    if kind is SheetKind.DEPARTMENTS:
        return ParsedWorkbook(departments=rows, source_name=source_name)
    return ParsedWorkbook(positions=rows, source_name=source_name)


_TEMPLATE_EXAMPLES = {
    SheetKind.DEPARTMENTS: [
        {"dept_code": "EXEC", "name": "Executive", "parent_dept_code": "-", "metadata": ""},
        {"dept_code": "TECH", "name": "Technology", "parent_dept_code": "EXEC", "metadata": ""},
        {"dept_code": "TECH-ENG", "name": "Engineering", "parent_dept_code": "TECH",
         "metadata": '{"cost_center": "4100"}'},
        {"dept_code": "HR", "name": "Human Resources", "parent_dept_code": "EXEC", "metadata": ""},
    ],
    SheetKind.POSITIONS: [
        {"pos_code": "CEO-001", "title": "Chief Executive Officer", "dept_code": "EXEC",
         "reports_to_pos_code": "", "is_manager": "yes", "is_active": "yes", "incumbents_count": 1},
        {"pos_code": "CTO-001", "title": "Chief Technology Officer", "dept_code": "TECH",
         "reports_to_pos_code": "CEO-001", "is_manager": "yes", "is_active": "yes",
         "incumbents_count": 1},
        {"pos_code": "ENG-001", "title": "Software Engineer", "dept_code": "TECH-ENG",
         "reports_to_pos_code": "CTO-001", "is_manager": "no", "is_active": "yes",
         "incumbents_count": 4},
    ],
}


def write_template(path: Path | str, kind: SheetKind | str, include_examples: bool = True) -> Path:
    """Write an import template (header plus optional example rows) to ``path``."""
    kind = SheetKind(kind)
    path = Path(path)
    columns = list(_DEPARTMENT_COLUMNS if kind is SheetKind.DEPARTMENTS else _POSITION_COLUMNS)
    records = _TEMPLATE_EXAMPLES[kind] if include_examples else []
    df = pd.DataFrame(records, columns=columns)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_excel(path, sheet_name=kind.value.capitalize(), index=False, engine="openpyxl")
    logger.info("template written: %s", path)
    return path
