from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .rows import SheetKind

"""Validation result model.

Validation stages never raise for expected data problems; they return a list of
``ValidationError`` values and the caller decides whether to halt (any ERROR)
or proceed with warnings.
"""

__all__ = [
    "ErrorSeverity",
    "ErrorType",
    "ValidationError",
]


class ErrorSeverity(Enum):
    """ERROR blocks the import, WARNING is informational."""
    ERROR = "ERROR"
    WARNING = "WARNING"


class ErrorType(Enum):
    INVALID_FILE_FORMAT = "INVALID_FILE_FORMAT"
    MISSING_SHEET = "MISSING_SHEET"
    MISSING_COLUMN = "MISSING_COLUMN"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    DUPLICATE_CODE_IN_FILE = "DUPLICATE_CODE_IN_FILE"
    INVALID_REFERENCE = "INVALID_REFERENCE"
    CIRCULAR_REFERENCE = "CIRCULAR_REFERENCE"
    HIERARCHY_TOO_DEEP = "HIERARCHY_TOO_DEEP"
    INVALID_JSON = "INVALID_JSON"
    BUSINESS_RULE = "BUSINESS_RULE"  # e.g. multiple root departments


@dataclass(frozen=True)
class ValidationError:
    """A single validation finding with enough context to fix the sheet.

    ``row`` is None for group-level findings that do not belong to one line.
    """
    severity: ErrorSeverity
    error_type: ErrorType
    message: str
    sheet: SheetKind
    row: int | None = None
    field: str | None = None  # row attribute name, e.g. "parent_code"
    suggestion: str | None = None
    affected_codes: tuple[str, ...] = ()

    @property
    def is_error(self) -> bool:
        return self.severity is ErrorSeverity.ERROR

    def describe(self) -> str:
        """One-line human readable form used by the CLI."""
        where = f"{self.sheet.value}"
        if self.row is not None:
            where += f" row {self.row}"
        if self.field:
            where += f" [{self.field}]"
        return f"{where}: {self.message}"
