from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any

"""Row models for the org-structure import.

A row is the logical representation of one spreadsheet line after parsing.
Known columns are typed attributes; everything else in the sheet travels in
``extra`` so that merge and passthrough keep unknown cells intact.

Row numbers are 1-based spreadsheet lines (line 1 is the header, so the first
data row is 2) and are only used for user-facing messages.
"""

__all__ = [
    "SheetKind",
    "DepartmentRow",
    "PositionRow",
    "SheetRow",
    "EMPTY_PARENT_MARKERS",
    "is_blank",
    "normalize_code",
]

# "-" is what people type into the parent column for a top-level department
EMPTY_PARENT_MARKERS = frozenset({"", "-"})


class SheetKind(Enum):
    """Sheet / record type handled by the importer."""
    DEPARTMENTS = "departments"
    POSITIONS = "positions"

    @property
    def item_type(self) -> str:
        """Singular type label used on import items ("department" / "position")."""
        return self.value[:-1]


def is_blank(value: Any) -> bool:
    """True for None, empty strings and whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


def normalize_code(code: Any) -> str:
    """Natural key used for matching: trimmed and lower-cased."""
    if code is None:
        return ""
    return str(code).strip().lower()


@dataclass(frozen=True)
class DepartmentRow:
    """One line of the Departments sheet."""
    row: int  # spreadsheet line number
    code: str  # dept_code
    name: str
    parent_code: str | None = None  # parent_dept_code, None for a root department
    metadata: dict[str, Any] | list[Any] | str | None = None  # raw text unless an object or array
    extra: dict[str, Any] = field(default_factory=dict)

    kind = SheetKind.DEPARTMENTS
    required_fields = ("code", "name")
    reference_field = "parent_code"

    @property
    def display_name(self) -> str:
        return self.name

    @property
    def reference_code(self) -> str | None:
        return self.parent_code

    def to_data(self) -> dict[str, Any]:
        return _to_data(self)

    def with_data(self, data: dict[str, Any]) -> DepartmentRow:
        return _with_data(self, data)


@dataclass(frozen=True)
class PositionRow:
    """One line of the Positions sheet."""
    row: int
    code: str  # pos_code
    title: str
    department_code: str  # dept_code of the owning department
    reports_to_code: str | None = None  # reports_to_pos_code
    is_manager: bool = False
    is_active: bool = True
    incumbents_count: int = 0
    extra: dict[str, Any] = field(default_factory=dict)

    kind = SheetKind.POSITIONS
    required_fields = ("code", "title", "department_code")
    reference_field = "reports_to_code"

    @property
    def display_name(self) -> str:
        return self.title

    @property
    def reference_code(self) -> str | None:
        return self.reports_to_code

    def to_data(self) -> dict[str, Any]:
        return _to_data(self)

    def with_data(self, data: dict[str, Any]) -> PositionRow:
        return _with_data(self, data)


SheetRow = DepartmentRow | PositionRow


def _to_data(row: Any) -> dict[str, Any]:
    # Flat field map used by duplicate analysis; the line number is not data.
    data: dict[str, Any] = {}
    for f in fields(row):
        if f.name in ("row", "extra"):
            continue
        data[f.name] = getattr(row, f.name)
    for key, value in row.extra.items():
        data.setdefault(key, value)
    return data


def _with_data(row: Any, data: dict[str, Any]) -> Any:
    known = {f.name for f in fields(row)} - {"row", "extra"}
    kwargs: dict[str, Any] = {"row": row.row}
    extra: dict[str, Any] = {}
    for key, value in data.items():
        if key in known:
            kwargs[key] = value
        elif key != "row":
            extra[key] = value
    kwargs["extra"] = extra
    return type(row)(**kwargs)
