from __future__ import annotations

from dataclasses import dataclass, field

from .rows import DepartmentRow, PositionRow, SheetKind, SheetRow

"""ParsedWorkbook model: the parser's output and the pipeline's input."""

__all__ = [
    "ParsedWorkbook",
]


@dataclass(frozen=True)
class ParsedWorkbook:
    """Rows extracted from one uploaded spreadsheet.

    An upload carries one sheet kind, so one of the lists is normally empty.
    """
    departments: list[DepartmentRow] = field(default_factory=list)
    positions: list[PositionRow] = field(default_factory=list)
    source_name: str = "<memory>"  # file name, used in error logs

    def rows_for(self, kind: SheetKind) -> list[SheetRow]:
        if kind is SheetKind.DEPARTMENTS:
            return list(self.departments)
        return list(self.positions)

    @property
    def total_rows(self) -> int:
        return len(self.departments) + len(self.positions)
