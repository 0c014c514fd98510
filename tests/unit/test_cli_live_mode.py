from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from org_import.cli.__main__ import main as cli_main


@pytest.fixture()
def live_db(monkeypatch):
    """Mocked psycopg2 connection; EXEC already exists in the departments table."""
    monkeypatch.delenv("DISABLE_DB_CONNECT", raising=False)
    cursor = MagicMock()
    cursor.fetchall.side_effect = [[("EXEC",)], []]
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor

    @contextmanager
    def fake_connect(db):
        yield conn

    inserted: list[list] = []

    def fake_execute_values(cur, sql, rows, page_size=1000):
        inserted.append([r[0] for r in rows])

    monkeypatch.setattr("org_import.cli.__main__.connect", fake_connect)
    monkeypatch.setattr("org_import.db.batch_insert.execute_values", fake_execute_values)
    return conn, cursor, inserted


def test_cli_live_mode_success(write_config: Path, temp_workdir: Path, make_xlsx, live_db, capsys):
    conn, cursor, inserted = live_db
    path = make_xlsx(temp_workdir / "data" / "org.xlsx", [
        {"dept_code": "exec", "name": "Executive Office"},
        {"dept_code": "HR", "name": "Human Resources", "parent_dept_code": "EXEC"},
        {"dept_code": "FIN", "name": "Finance", "parent_dept_code": "EXEC"},
    ])
    code = cli_main([str(path), "--kind", "departments"])
    out = capsys.readouterr().out
    assert code == 0
    assert "mode=live" in out
    assert "SUMMARY total=3 succeeded=3 failed=0 created=2 updated=1" in out
    # batch_size 2: [exec (update), HR (create)] then [FIN]
    assert inserted == [["HR"], ["FIN"]]
    updates = [c.args for c in cursor.execute.call_args_list if c.args[0].startswith("UPDATE")]
    assert len(updates) == 1 and updates[0][1][-1] == "exec"
    assert conn.commit.call_count >= 1


def test_cli_live_mode_blocked_plan_writes_nothing(write_config: Path, temp_workdir: Path, make_xlsx,
                                                   live_db, capsys):
    conn, _, inserted = live_db
    path = make_xlsx(temp_workdir / "data" / "org.xlsx", [
        {"dept_code": "HR", "name": "Human Resources", "parent_dept_code": "UNKNOWN"},
    ])
    assert cli_main([str(path), "--kind", "departments"]) == 1
    assert inserted == []
    conn.commit.assert_not_called()
    assert "Parent department 'UNKNOWN' does not exist" in capsys.readouterr().out
