from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

"""Classified import items (input of the batch import manager)."""

__all__ = [
    "OperationType",
    "ImportItem",
    "EntitySummary",
    "ImportSummary",
    "ExistingCodes",
]


class OperationType(Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"


@dataclass(frozen=True)
class ImportItem:
    """One record to persist, already tagged CREATE or UPDATE."""
    id: str
    type: str  # "department" | "position"
    operation: OperationType
    data: dict[str, Any]
    row: int | None = None  # source line, kept for error reporting

    @property
    def code(self) -> str:
        return str(self.data.get("code", ""))


@dataclass(frozen=True)
class EntitySummary:
    total: int = 0
    creates: int = 0
    updates: int = 0


@dataclass(frozen=True)
class ImportSummary:
    total_rows: int
    departments: EntitySummary
    positions: EntitySummary


@dataclass(frozen=True)
class ExistingCodes:
    """Codes already persisted in the target store, queried once per run."""
    departments: frozenset[str] = frozenset()
    positions: frozenset[str] = frozenset()
