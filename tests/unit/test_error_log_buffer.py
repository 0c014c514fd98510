from __future__ import annotations

import json
import re
from pathlib import Path

from org_import.logging.error_log import ErrorLogBuffer, ErrorRecord

KEYS = {"timestamp", "file", "sheet", "row", "error_type", "message"}


def test_error_log_buffer_flush(temp_workdir: Path):
    buf = ErrorLogBuffer()
    buf.append(ErrorRecord.create("org.xlsx", "departments", 3, "MISSING_REQUIRED_FIELD", "name missing"))
    buf.append(ErrorRecord.create("org.xlsx", "departments", -1, "CIRCULAR_REFERENCE", "A → B → A"))
    path = buf.flush()
    assert path is not None and path.exists()
    assert path.parent == Path("logs")
    assert re.fullmatch(r"errors-\d{8}-\d{6}\.log", path.name)
    lines = path.read_text(encoding="utf-8").strip().splitlines()
    assert len(lines) == 2
    for raw in lines:
        assert set(json.loads(raw)) == KEYS
    # non-ASCII arrows are written as-is
    assert "A → B → A" in lines[1]
    assert len(buf) == 0
    assert buf.written == 2


def test_error_log_buffer_multiple_flushes_append(temp_workdir: Path):
    buf = ErrorLogBuffer()
    buf.append(ErrorRecord.create("f.xlsx", "positions", 2, "IMPORT_FAILED", "dup"))
    path = buf.flush()
    size1 = path.stat().st_size
    buf.extend([ErrorRecord.create("f.xlsx", "positions", 3, "IMPORT_FAILED", "dup2")])
    path2 = buf.flush()
    assert path == path2
    assert path2.stat().st_size > size1


def test_nothing_logged_creates_no_file(temp_workdir: Path):
    buf = ErrorLogBuffer(temp_workdir / "nested" / "logs")
    assert buf.flush() is None
    assert not (temp_workdir / "nested").exists()


def test_custom_directory_is_created_lazily(temp_workdir: Path):
    target = temp_workdir / "nested" / "logs"
    buf = ErrorLogBuffer(target)
    buf.append(ErrorRecord.create("f.xlsx", "departments", 2, "INVALID_REFERENCE", "x"))
    path = buf.flush()
    assert path.parent == target
    # a later empty flush still reports the file
    assert buf.flush() == path
