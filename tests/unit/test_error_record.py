from __future__ import annotations

import json

from org_import.models import (
    BatchImportError,
    ErrorSeverity,
    ErrorType,
    SheetKind,
    ValidationError,
)
from org_import.models.error_record import ErrorRecord


def test_error_record_creation_and_json_line():
    rec = ErrorRecord.create(
        file="org.xlsx",
        sheet="departments",
        row=10,
        error_type="INVALID_REFERENCE",
        message="Parent department 'X' does not exist",
    )
    data = json.loads(rec.to_json_line())
    assert data["file"] == "org.xlsx"
    assert data["row"] == 10
    assert data["timestamp"].endswith("Z")
    assert set(data) == {"timestamp", "file", "sheet", "row", "error_type", "message"}


def test_from_validation_error():
    err = ValidationError(
        ErrorSeverity.ERROR, ErrorType.MISSING_REQUIRED_FIELD, "Department name is required",
        SheetKind.DEPARTMENTS, row=4, field="name",
    )
    rec = ErrorRecord.from_validation_error("org.xlsx", err)
    assert (rec.sheet, rec.row, rec.error_type) == ("departments", 4, "MISSING_REQUIRED_FIELD")
    assert rec.message == "Department name is required"


def test_group_level_finding_uses_unknown_row():
    err = ValidationError(
        ErrorSeverity.WARNING, ErrorType.BUSINESS_RULE, "Multiple root departments",
        SheetKind.DEPARTMENTS,
    )
    assert ErrorRecord.from_validation_error("org.xlsx", err).row == -1


def test_from_batch_error():
    err = BatchImportError(
        item_id="position-7", item_type="position", attempt=3,
        error="duplicate key value", data={"code": "P7"},
    )
    rec = ErrorRecord.from_batch_error("pos.xlsx", err, row=7)
    assert (rec.sheet, rec.row, rec.error_type) == ("positions", 7, "IMPORT_FAILED")
    assert rec.message == "position-7 (attempt 3): duplicate key value"
    assert ErrorRecord.from_batch_error("pos.xlsx", err).row == -1
