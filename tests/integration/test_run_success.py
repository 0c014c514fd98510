from __future__ import annotations

import re
from pathlib import Path

import pytest

from org_import.cli.__main__ import main as cli_main

"""End-to-end CLI runs on real workbooks in dry-run mode (no database)."""

SUMMARY_RE = re.compile(
    r"^SUMMARY total=(\d+) succeeded=(\d+) failed=(\d+) created=(\d+) updated=(\d+) "
    r"cancelled=(true|false) elapsed_sec=[0-9.]+ throughput_ips=[0-9.]+$",
    re.MULTILINE,
)


@pytest.fixture(autouse=True)
def _no_database(monkeypatch):
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")


def _summary(out: str) -> tuple[str, ...]:
    matches = SUMMARY_RE.findall(out)
    assert len(matches) == 1, out
    return matches[0]


def test_departments_import(write_config: Path, temp_workdir: Path, make_xlsx, capsys):
    path = make_xlsx(temp_workdir / "data" / "org.xlsx", [
        {"dept_code": "TECH-ENG", "name": "Engineering", "parent_dept_code": "TECH"},
        {"dept_code": "EXEC", "name": "Executive", "parent_dept_code": "-"},
        {"dept_code": "TECH", "name": "Technology", "parent_dept_code": "EXEC",
         "metadata": '{"cost_center": "4100"}'},
        {"dept_code": "HR", "name": "Human Resources", "parent_dept_code": "EXEC"},
        {"dept_code": "HR-REC", "name": "Recruiting", "parent_dept_code": "HR"},
    ])
    code = cli_main([str(path), "--kind", "departments"])
    out = capsys.readouterr().out
    assert code == 0
    assert _summary(out) == ("5", "5", "0", "5", "0", "false")
    assert "mode=dry-run batches=3" in out  # batch_size 2 from config
    assert "departments: 5 to import (5 create, 0 update)" in out
    assert not list((temp_workdir / "logs").glob("errors-*.log"))


def test_positions_import(write_config: Path, temp_workdir: Path, make_xlsx, capsys):
    path = make_xlsx(temp_workdir / "data" / "pos.xlsx", [
        {"pos_code": "ENG-001", "title": "Engineer", "dept_code": "TECH", "reports_to_pos_code": "CTO-001",
         "is_manager": "no", "is_active": "yes", "incumbents_count": 3},
        {"pos_code": "CEO-001", "title": "CEO", "dept_code": "EXEC", "reports_to_pos_code": "",
         "is_manager": "yes", "is_active": "yes", "incumbents_count": 1},
        {"pos_code": "CTO-001", "title": "CTO", "dept_code": "TECH", "reports_to_pos_code": "CEO-001",
         "is_manager": "yes", "is_active": "", "incumbents_count": 1},
    ], sheet_name="Positions")
    code = cli_main([str(path), "--kind", "positions"])
    out = capsys.readouterr().out
    assert code == 0
    assert _summary(out)[:4] == ("3", "3", "0", "3")


def test_duplicates_are_auto_resolved(write_config: Path, temp_workdir: Path, make_xlsx, capsys):
    path = make_xlsx(temp_workdir / "data" / "org.xlsx", [
        {"dept_code": "EXEC", "name": "Executive"},
        {"dept_code": "HR", "name": "", "parent_dept_code": "EXEC"},
        {"dept_code": "hr", "name": "Human Resources", "parent_dept_code": "EXEC"},
        {"dept_code": "FIN", "name": "Finance", "parent_dept_code": "EXEC"},
        {"dept_code": "FIN", "name": "Finance", "parent_dept_code": "EXEC"},
    ])
    code = cli_main([str(path), "--kind", "departments"])
    out = capsys.readouterr().out
    assert code == 0
    assert _summary(out)[:3] == ("3", "3", "0")
    assert "duplicate department code 'hr' rows=[4, 3]: Keep First" in out
    assert "duplicate department code 'FIN' rows=[5, 6]: Keep First (All entries are identical" in out


def test_explicit_strategy_overrides_recommendation(write_config: Path, temp_workdir: Path, make_xlsx, capsys):
    path = make_xlsx(temp_workdir / "data" / "org.xlsx", [
        {"dept_code": "EXEC", "name": "Executive"},
        {"dept_code": "HR", "name": "People", "parent_dept_code": "EXEC"},
        {"dept_code": "HR", "name": "Human Resources", "parent_dept_code": "EXEC",
         "metadata": '{"cc": "1"}'},
    ])
    code = cli_main([str(path), "--kind", "departments", "--strategy", "hr=keep-last"])
    out = capsys.readouterr().out
    assert code == 0
    assert "Keep Last" in out
    assert _summary(out)[:2] == ("2", "2")
