"""Domain models for the org-structure spreadsheet importer.

This package contains the data shapes shared by every pipeline stage: parsed
rows, validation findings, duplicate analysis, classified import items and the
batch import status.
"""

from .batch_status import (
    BatchImportError,
    BatchImportResult,
    BatchImportStatus,
    BatchOutcome,
    ItemFailure,
)
from .config_models import BatchImportConfig, DatabaseConfig, ImportConfig, TableConfig
from .duplicates import (
    DuplicateDetectionResult,
    DuplicateEntry,
    DuplicateGroup,
    DuplicateResolution,
    DuplicateRowInfo,
    DuplicateStrategy,
)
from .import_item import EntitySummary, ExistingCodes, ImportItem, ImportSummary, OperationType
from .rows import DepartmentRow, PositionRow, SheetKind, SheetRow
from .validation import ErrorSeverity, ErrorType, ValidationError
from .workbook import ParsedWorkbook

__all__ = [
    # Rows
    "SheetKind",
    "SheetRow",
    "DepartmentRow",
    "PositionRow",
    "ParsedWorkbook",
    # Validation
    "ErrorSeverity",
    "ErrorType",
    "ValidationError",
    # Duplicates
    "DuplicateStrategy",
    "DuplicateRowInfo",
    "DuplicateEntry",
    "DuplicateGroup",
    "DuplicateResolution",
    "DuplicateDetectionResult",
    # Classification
    "OperationType",
    "ImportItem",
    "EntitySummary",
    "ImportSummary",
    "ExistingCodes",
    # Batch import
    "BatchImportError",
    "BatchImportStatus",
    "BatchImportResult",
    "BatchOutcome",
    "ItemFailure",
    # Configuration
    "BatchImportConfig",
    "DatabaseConfig",
    "ImportConfig",
    "TableConfig",
]
