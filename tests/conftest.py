# Shared pytest fixtures
from __future__ import annotations

import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

from org_import.logging.init import reset_logging
from org_import.models import DepartmentRow, PositionRow


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture(autouse=True)
def _fresh_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def sample_config_yaml() -> str:
    return """batch:
  batch_size: 2
  delay_between_batches: 0
  retry_attempts: 1
  retry_delay: 0
tables:
  departments:
    table: departments
  positions:
    table: positions
    columns:
      title: position_title
max_hierarchy_depth: 20
logs_directory: ./logs
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def dept() -> Callable[..., DepartmentRow]:
    """Department row factory; row numbers count up from 2 unless given."""
    counter = iter(range(2, 100_000))

    def make(code: str, name: str | None = None, parent: str | None = None,
             row: int | None = None, **kwargs: Any) -> DepartmentRow:
        return DepartmentRow(
            row=row if row is not None else next(counter),
            code=code,
            name=name if name is not None else f"{code} department",
            parent_code=parent,
            **kwargs,
        )

    return make


@pytest.fixture()
def pos() -> Callable[..., PositionRow]:
    counter = iter(range(2, 100_000))

    def make(code: str, department: str = "HR", reports_to: str | None = None,
             title: str | None = None, row: int | None = None, **kwargs: Any) -> PositionRow:
        return PositionRow(
            row=row if row is not None else next(counter),
            code=code,
            title=title if title is not None else f"{code} title",
            department_code=department,
            reports_to_code=reports_to,
            **kwargs,
        )

    return make


@pytest.fixture()
def make_xlsx() -> Callable[..., Path]:
    """Write records (first line = header) to a real .xlsx file."""

    def make(path: Path, records: list[dict[str, Any]], sheet_name: str = "Departments",
             columns: list[str] | None = None) -> Path:
        df = pd.DataFrame(records, columns=columns)
        path.parent.mkdir(parents=True, exist_ok=True)
        df.to_excel(path, sheet_name=sheet_name, index=False, engine="openpyxl")
        return path

    return make
