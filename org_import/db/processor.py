from __future__ import annotations

import itertools
import logging
from collections.abc import Callable, Sequence
from typing import Any

import psycopg2

from ..models.batch_status import BatchOutcome, ItemFailure
from ..models.config_models import TableConfig
from ..models.import_item import ImportItem, OperationType
from .batch_insert import BatchInsertError, BatchMetrics, adapt_value, batch_insert, quote_ident

"""Batch processors handed to the batch import manager.

``PostgresItemProcessor`` persists one batch per transaction:

- consecutive CREATE items of one type are bulk inserted inside a savepoint;
  when the bulk insert fails the run is replayed item by item, each in its own
  savepoint, so only the offending items are reported
- UPDATE items are updated one by one (matched on the case-insensitive code);
  an UPDATE touching no row is a failure

Data errors become per-item failures. Connection level errors propagate so the
manager fails the whole batch.
"""

__all__ = [
    "PostgresItemProcessor",
    "DryRunProcessor",
]

logger = logging.getLogger(__name__)

_SYSTEMIC_ERRORS = (psycopg2.OperationalError, psycopg2.InterfaceError)


class DryRunProcessor:
    """Accepts every item without persisting anything (mock mode)."""

    def __init__(self) -> None:
        self.calls = 0
        self.items_seen = 0

    def __call__(self, items: list[ImportItem]) -> BatchOutcome:
        self.calls += 1
        self.items_seen += len(items)
        logger.debug("dry-run: accepted %d item(s)", len(items))
        return BatchOutcome(succeeded=list(items))


class PostgresItemProcessor:
    """Persist import items through a psycopg2 connection.

    Args:
        connection: psycopg2 connection with autocommit disabled
        tables: target table per item type ("department" / "position")
        page_size: execute_values page size
        metrics_callback: forwarded to ``batch_insert``
    """

    def __init__(
        self,
        connection: Any,
        tables: dict[str, TableConfig],
        *,
        page_size: int = 1000,
        metrics_callback: Callable[[BatchMetrics], None] | None = None,
    ) -> None:
        self.connection = connection
        self.tables = tables
        self.page_size = page_size
        self.metrics_callback = metrics_callback
        self._savepoints = itertools.count(1)

    def _columns(self, table: TableConfig, items: Sequence[ImportItem]) -> list[str]:
        # only attributes present on the items are written
        present = set().union(*(item.data.keys() for item in items))
        return [attr for attr in table.columns if attr in present]

    def _savepoint(self, cursor: Any, action: Callable[[], None]) -> None:
        name = f"org_import_{next(self._savepoints)}"
        cursor.execute(f"SAVEPOINT {name}")
        try:
            action()
        except Exception:
            cursor.execute(f"ROLLBACK TO SAVEPOINT {name}")
            raise
        cursor.execute(f"RELEASE SAVEPOINT {name}")

    def _insert(self, cursor: Any, table: TableConfig, items: Sequence[ImportItem]) -> None:
        attrs = self._columns(table, items)
        batch_insert(
            cursor,
            table.table,
            [table.columns[a] for a in attrs],
            [[item.data.get(a) for a in attrs] for item in items],
            page_size=self.page_size,
            metrics_callback=self.metrics_callback,
        )

    def _update(self, cursor: Any, table: TableConfig, item: ImportItem) -> None:
        attrs = [a for a in self._columns(table, [item]) if a != "code"]
        if not attrs:
            raise BatchInsertError(
                f"nothing to update for {item.type} '{item.code}': no mapped columns besides the code"
            )
        assignments = ", ".join(f"{quote_ident(table.columns[a])} = %s" for a in attrs)
        code_column = quote_ident(table.code_column)
        try:
            cursor.execute(
                f"UPDATE {quote_ident(table.table)} SET {assignments} "
                f"WHERE lower({code_column}) = lower(%s)",
                [adapt_value(item.data.get(a)) for a in attrs] + [item.code],
            )
        except psycopg2.Error as e:
            raise BatchInsertError(str(e).strip()) from e
        if cursor.rowcount == 0:
            raise BatchInsertError(f"no existing {item.type} with code '{item.code}'")

    def _persist_one(self, cursor: Any, table: TableConfig, item: ImportItem, outcome: BatchOutcome) -> None:
        if item.operation is OperationType.CREATE:
            action = lambda: self._insert(cursor, table, [item])  # noqa: E731
        else:
            action = lambda: self._update(cursor, table, item)  # noqa: E731
        try:
            self._savepoint(cursor, action)
        except BatchInsertError as e:
            if isinstance(e.__cause__, _SYSTEMIC_ERRORS):
                raise
            outcome.failed.append(ItemFailure(item, str(e)))
        else:
            outcome.succeeded.append(item)

    def _persist_run(self, cursor: Any, items: list[ImportItem], outcome: BatchOutcome) -> None:
        first = items[0]
        table = self.tables[first.type]
        if first.operation is OperationType.CREATE and len(items) > 1:
            try:
                self._savepoint(cursor, lambda: self._insert(cursor, table, items))
            except BatchInsertError as e:
                if isinstance(e.__cause__, _SYSTEMIC_ERRORS):
                    raise
                logger.debug("bulk insert of %d %s(s) failed, retrying per item: %s",
                             len(items), first.type, e)
            else:
                outcome.succeeded.extend(items)
                return
        for item in items:
            self._persist_one(cursor, table, item, outcome)

    def __call__(self, items: list[ImportItem]) -> BatchOutcome:
        outcome = BatchOutcome()
        try:
            with self.connection.cursor() as cursor:
                for _, run in itertools.groupby(items, key=lambda i: (i.type, i.operation)):
                    self._persist_run(cursor, list(run), outcome)
            self.connection.commit()
        except Exception:
            self.connection.rollback()
            raise
        return outcome
