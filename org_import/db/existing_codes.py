from __future__ import annotations

import logging
from typing import Any

from ..models.config_models import TableConfig
from ..models.import_item import ExistingCodes
from .batch_insert import quote_ident

"""Existing-codes provider backed by the target tables (one query per table)."""

__all__ = [
    "fetch_codes",
    "fetch_existing_codes",
]

logger = logging.getLogger(__name__)


def fetch_codes(cursor: Any, table: TableConfig) -> frozenset[str]:
    column = quote_ident(table.code_column)
    cursor.execute(
        f"SELECT {column} FROM {quote_ident(table.table)} WHERE {column} IS NOT NULL"
    )
    return frozenset(str(r[0]) for r in cursor.fetchall())


def fetch_existing_codes(cursor: Any, departments: TableConfig, positions: TableConfig) -> ExistingCodes:
    existing = ExistingCodes(
        departments=fetch_codes(cursor, departments),
        positions=fetch_codes(cursor, positions),
    )
    logger.debug(
        "existing codes: %d department(s), %d position(s)",
        len(existing.departments), len(existing.positions),
    )
    return existing
