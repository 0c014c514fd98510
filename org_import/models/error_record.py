from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

from .batch_status import BatchImportError
from .validation import ValidationError

"""ErrorRecord model for the JSON Lines error log.

Validation findings and permanently failed import items both end up here with
the same fixed key set. ``row`` is -1 when a finding has no single line
(group-level validation errors, items without a source row).
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: uploaded file name
        sheet: "departments" / "positions"
        row: spreadsheet line (1-based), -1 when unknown
        error_type: classification in UPPER_SNAKE_CASE
        message: human readable description
    """
    timestamp: str
    file: str
    sheet: str
    row: int
    error_type: str
    message: str

    @staticmethod
    def create(file: str, sheet: str, row: int, error_type: str, message: str) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            sheet=sheet,
            row=row,
            error_type=error_type,
            message=message,
        )

    @staticmethod
    def from_validation_error(file: str, error: ValidationError) -> ErrorRecord:
        return ErrorRecord.create(
            file=file,
            sheet=error.sheet.value,
            row=error.row if error.row is not None else -1,
            error_type=error.error_type.value,
            message=error.message,
        )

    @staticmethod
    def from_batch_error(file: str, error: BatchImportError, row: int | None = None) -> ErrorRecord:
        return ErrorRecord.create(
            file=file,
            sheet=f"{error.item_type}s",
            row=row if row is not None else -1,
            error_type="IMPORT_FAILED",
            message=f"{error.item_id} (attempt {error.attempt}): {error.error}",
        )

    def to_json_line(self) -> str:
        # asdict keeps the key set fixed
        return json.dumps(asdict(self), ensure_ascii=False)
