from __future__ import annotations

from pathlib import Path

import pytest

from org_import.cli.__main__ import EXIT_FATAL, EXIT_PARTIAL_FAILURE, EXIT_SUCCESS_ALL
from org_import.cli.__main__ import main as cli_main
from org_import.models import BatchOutcome, ItemFailure

"""Exit code contract.

0: every item imported
2: some items failed, or the run was cancelled
1: fatal error or import blocked by validation
"""


@pytest.fixture(autouse=True)
def _no_database(monkeypatch):
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")


@pytest.fixture()
def org_xlsx(temp_workdir: Path, make_xlsx) -> Path:
    return make_xlsx(temp_workdir / "data" / "org.xlsx", [
        {"dept_code": "EXEC", "name": "Executive"},
        {"dept_code": "HR", "name": "Human Resources", "parent_dept_code": "EXEC"},
    ])


def test_exit_code_values():
    assert (EXIT_SUCCESS_ALL, EXIT_FATAL, EXIT_PARTIAL_FAILURE) == (0, 1, 2)


def test_exit_code_all_success(write_config, org_xlsx: Path):
    assert cli_main([str(org_xlsx), "--kind", "departments"]) == EXIT_SUCCESS_ALL


def test_exit_code_fatal_on_config(write_config, org_xlsx: Path, capsys):
    write_config.write_text("batch:\n  batch_size: 0\n", encoding="utf-8")
    assert cli_main([str(org_xlsx), "--kind", "departments"]) == EXIT_FATAL
    assert "ERROR config:" in capsys.readouterr().out


def test_exit_code_fatal_on_missing_file(temp_workdir: Path):
    assert cli_main([str(temp_workdir / "missing.xlsx"), "--kind", "departments"]) == EXIT_FATAL


def test_exit_code_fatal_on_blocked_plan(write_config, temp_workdir: Path, make_xlsx):
    path = make_xlsx(temp_workdir / "data" / "bad.xlsx", [
        {"dept_code": "HR", "name": "Human Resources", "parent_dept_code": "NOWHERE"},
    ])
    assert cli_main([str(path), "--kind", "departments"]) == EXIT_FATAL


def test_exit_code_partial_failure(write_config, org_xlsx: Path, monkeypatch):
    def reject_hr(items):
        return BatchOutcome(
            succeeded=[i for i in items if i.code != "HR"],
            failed=[ItemFailure(i, "check constraint") for i in items if i.code == "HR"],
        )

    monkeypatch.setattr("org_import.cli.__main__.DryRunProcessor", lambda: reject_hr)
    assert cli_main([str(org_xlsx), "--kind", "departments"]) == EXIT_PARTIAL_FAILURE


def test_exit_code_cancelled_run(write_config, org_xlsx: Path, monkeypatch, capsys):
    from org_import.services.batch_manager import BatchImportManager

    original_initialize = BatchImportManager.initialize

    def initialize(self, items, processor):
        def cancelling(batch):
            self.cancel()  # as the SIGINT handler would
            return processor(batch)
        return original_initialize(self, items, cancelling)

    monkeypatch.setattr(BatchImportManager, "initialize", initialize)
    assert cli_main([str(org_xlsx), "--kind", "departments"]) == EXIT_PARTIAL_FAILURE
    assert "cancelled=true" in capsys.readouterr().out
