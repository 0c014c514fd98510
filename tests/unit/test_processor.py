from __future__ import annotations

from unittest.mock import MagicMock

import psycopg2
import pytest

from org_import.db.processor import DryRunProcessor, PostgresItemProcessor
from org_import.models import ImportConfig, ImportItem, OperationType


class FakeCursor:
    def __init__(self, rowcount: int = 1) -> None:
        self.statements: list[tuple[str, object]] = []
        self.rowcount = rowcount

    def execute(self, sql, params=None):
        self.statements.append((sql, params))

    def sql(self) -> list[str]:
        return [s for s, _ in self.statements]


def _connection(cursor: FakeCursor) -> MagicMock:
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    return conn


def _tables():
    cfg = ImportConfig()
    return {"department": cfg.departments, "position": cfg.positions}


def _dept(code: str, op: OperationType = OperationType.CREATE, row: int = 2) -> ImportItem:
    return ImportItem(
        id=f"department-{row}", type="department", operation=op,
        data={"code": code, "name": f"{code} dept", "parent_code": None, "metadata": None}, row=row,
    )


@pytest.fixture()
def inserted(monkeypatch):
    """Replace execute_values; rows whose first value is 'BAD' violate a constraint."""
    import org_import.db.batch_insert as bi
    calls: list[list] = []

    def fake_execute_values(cursor, sql, rows, page_size=1000):
        if any(r[0] == "BAD" for r in rows):
            raise psycopg2.IntegrityError("duplicate key value violates unique constraint")
        calls.append([r[0] for r in rows])

    monkeypatch.setattr(bi, "execute_values", fake_execute_values)
    return calls


def test_dry_run_accepts_everything():
    proc = DryRunProcessor()
    items = [_dept("A", row=2), _dept("B", row=3)]
    outcome = proc(items)
    assert outcome.succeeded == items
    assert outcome.failed == []
    assert (proc.calls, proc.items_seen) == (1, 2)


def test_bulk_insert_of_create_run(inserted):
    cursor = FakeCursor()
    conn = _connection(cursor)
    items = [_dept("A", row=2), _dept("B", row=3), _dept("C", row=4)]
    outcome = PostgresItemProcessor(conn, _tables())(items)
    assert outcome.succeeded == items
    assert inserted == [["A", "B", "C"]]
    assert cursor.sql()[0].startswith("SAVEPOINT")
    assert cursor.sql()[-1].startswith("RELEASE SAVEPOINT")
    conn.commit.assert_called_once()


def test_bulk_failure_falls_back_to_per_item(inserted):
    cursor = FakeCursor()
    conn = _connection(cursor)
    items = [_dept("A", row=2), _dept("BAD", row=3), _dept("C", row=4)]
    outcome = PostgresItemProcessor(conn, _tables())(items)
    assert [i.code for i in outcome.succeeded] == ["A", "C"]
    [failure] = outcome.failed
    assert failure.item.code == "BAD"
    assert "duplicate key" in failure.error
    assert inserted == [["A"], ["C"]]
    assert sum(1 for s in cursor.sql() if s.startswith("ROLLBACK TO SAVEPOINT")) == 2
    conn.commit.assert_called_once()


def test_update_matches_code_case_insensitively(inserted):
    cursor = FakeCursor(rowcount=1)
    item = _dept("HR", OperationType.UPDATE)
    outcome = PostgresItemProcessor(_connection(cursor), _tables())([item])
    assert outcome.succeeded == [item]
    sql, params = next((s, p) for s, p in cursor.statements if s.startswith("UPDATE"))
    assert 'UPDATE "departments" SET "name" = %s' in sql
    assert 'WHERE lower("dept_code") = lower(%s)' in sql
    assert params[-1] == "HR"


def test_update_of_missing_row_fails(inserted):
    cursor = FakeCursor(rowcount=0)
    item = _dept("GONE", OperationType.UPDATE)
    outcome = PostgresItemProcessor(_connection(cursor), _tables())([item])
    assert outcome.succeeded == []
    assert "no existing department with code 'GONE'" in outcome.failed[0].error


def test_update_with_only_a_code_fails_cleanly(inserted):
    cursor = FakeCursor(rowcount=1)
    item = ImportItem(id="department-2", type="department", operation=OperationType.UPDATE,
                      data={"code": "HR"}, row=2)
    outcome = PostgresItemProcessor(_connection(cursor), _tables())([item])
    assert outcome.succeeded == []
    assert "nothing to update for department 'HR'" in outcome.failed[0].error
    assert not any(s.startswith("UPDATE") for s in cursor.sql())
    assert any(s.startswith("ROLLBACK TO SAVEPOINT") for s in cursor.sql())


def test_mixed_runs_keep_order(inserted):
    cursor = FakeCursor()
    items = [
        _dept("A", row=2),
        _dept("HR", OperationType.UPDATE, row=3),
        _dept("B", row=4),
        _dept("C", row=5),
    ]
    outcome = PostgresItemProcessor(_connection(cursor), _tables())(items)
    assert [i.code for i in outcome.succeeded] == ["A", "HR", "B", "C"]
    assert inserted == [["A"], ["B", "C"]]


def test_connection_errors_propagate_and_roll_back(monkeypatch):
    import org_import.db.batch_insert as bi

    def lost(*args, **kwargs):
        raise psycopg2.OperationalError("server closed the connection unexpectedly")

    monkeypatch.setattr(bi, "execute_values", lost)
    conn = _connection(FakeCursor())
    with pytest.raises(Exception) as ei:
        PostgresItemProcessor(conn, _tables())([_dept("A", row=2), _dept("B", row=3)])
    assert isinstance(ei.value.__cause__, psycopg2.OperationalError)
    conn.rollback.assert_called_once()
    conn.commit.assert_not_called()
