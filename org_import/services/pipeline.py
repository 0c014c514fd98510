from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from ..models.batch_status import BatchImportResult
from ..models.config_models import ImportConfig
from ..models.duplicates import DuplicateEntry, DuplicateResolution, DuplicateStrategy
from ..models.import_item import ExistingCodes, ImportItem, ImportSummary
from ..models.rows import SheetKind, SheetRow, normalize_code
from ..models.validation import ErrorType, ValidationError
from ..models.workbook import ParsedWorkbook
from ..validation.validator import MAX_HIERARCHY_DEPTH, has_blocking_errors, validate
from .batch_manager import BatchImportManager, Processor, Subscriber
from .classifier import classify, summarize
from .duplicates import apply_resolutions, detect_duplicates, resolve_duplicate
from .hierarchy import order_by_hierarchy

"""Import pipeline: parsed workbook -> validated, de-duplicated, classified items.

Per sheet (departments first, then positions):

1. validate against the file and the existing codes
2. stop if anything other than in-file duplicates is an ERROR
3. detect duplicates and resolve each group (explicit strategy, else the
   recommendation when auto-resolving, else manual)
4. apply the resolutions and validate again; any ERROR now blocks the sheet
5. order parents before children and classify CREATE / UPDATE
"""

__all__ = [
    "PipelineError",
    "SheetPlan",
    "ImportPlan",
    "prepare_sheet",
    "prepare_import",
    "run_import",
]

logger = logging.getLogger(__name__)


class PipelineError(Exception):
    """Raised when an import is started from a plan that cannot run."""


@dataclass(frozen=True)
class SheetPlan:
    kind: SheetKind
    rows: list[SheetRow] = field(default_factory=list)  # final rows, hierarchy ordered
    validation_errors: list[ValidationError] = field(default_factory=list)
    duplicates: list[DuplicateEntry] = field(default_factory=list)
    resolutions: list[DuplicateResolution] = field(default_factory=list)
    items: list[ImportItem] = field(default_factory=list)
    blocked: bool = False


@dataclass(frozen=True)
class ImportPlan:
    """Everything needed to preview and run one import."""
    departments: SheetPlan = field(default_factory=lambda: SheetPlan(SheetKind.DEPARTMENTS))
    positions: SheetPlan = field(default_factory=lambda: SheetPlan(SheetKind.POSITIONS))
    source_name: str = "<memory>"

    @property
    def sheets(self) -> tuple[SheetPlan, SheetPlan]:
        return (self.departments, self.positions)

    @property
    def blocked(self) -> bool:
        return any(s.blocked for s in self.sheets)

    @property
    def items(self) -> list[ImportItem]:
        return [i for s in self.sheets for i in s.items]

    @property
    def summary(self) -> ImportSummary:
        return summarize(self.items)

    @property
    def validation_errors(self) -> list[ValidationError]:
        return [e for s in self.sheets for e in s.validation_errors]

    @property
    def duplicates(self) -> list[DuplicateEntry]:
        return [d for s in self.sheets for d in s.duplicates]

    @property
    def resolutions(self) -> list[DuplicateResolution]:
        return [r for s in self.sheets for r in s.resolutions]


def _choose_strategy(
    entry: DuplicateEntry,
    strategies: Mapping[str, DuplicateStrategy],
    auto_resolve: bool,
) -> DuplicateStrategy:
    if entry.key in strategies:
        return strategies[entry.key]
    if auto_resolve:
        return entry.recommended_strategy
    return DuplicateStrategy.MANUAL


def prepare_sheet(
    rows: Sequence[SheetRow],
    kind: SheetKind,
    existing_codes: Iterable[str],
    *,
    department_codes: Iterable[str] | None = None,
    strategies: Mapping[str, DuplicateStrategy] | None = None,
    auto_resolve: bool = True,
    max_depth: int = MAX_HIERARCHY_DEPTH,
) -> SheetPlan:
    if not rows:
        return SheetPlan(kind)
    existing = frozenset(existing_codes)
    departments = None if department_codes is None else frozenset(department_codes)

    entries = detect_duplicates(rows, kind)
    duplicated_rows = {n for entry in entries for n in entry.row_numbers}
    errors = validate(rows, existing_codes=existing, department_codes=departments, max_depth=max_depth)
    # errors on duplicated rows are rechecked once the duplicates are resolved
    fatal = [
        e for e in errors
        if e.is_error
        and e.error_type is not ErrorType.DUPLICATE_CODE_IN_FILE
        and e.row not in duplicated_rows
    ]
    if fatal:
        logger.info("%s: %d blocking validation error(s)", kind.value, len(fatal))
        return SheetPlan(kind, rows=list(rows), validation_errors=errors, duplicates=entries, blocked=True)

    resolutions = [
        resolve_duplicate(entry, _choose_strategy(entry, strategies or {}, auto_resolve))
        for entry in entries
    ]
    if entries:
        rows = apply_resolutions(rows, resolutions)
        errors = validate(rows, existing_codes=existing, department_codes=departments, max_depth=max_depth)
        logger.info(
            "%s: resolved %d duplicate group(s), %d row(s) remain",
            kind.value, len(entries), len(rows),
        )
    if has_blocking_errors(errors):
        return SheetPlan(
            kind, rows=list(rows), validation_errors=errors,
            duplicates=entries, resolutions=resolutions, blocked=True,
        )

    ordered = order_by_hierarchy(rows)
    return SheetPlan(
        kind,
        rows=ordered,
        validation_errors=errors,
        duplicates=entries,
        resolutions=resolutions,
        items=classify(ordered, existing),
    )


def prepare_import(
    workbook: ParsedWorkbook,
    existing: ExistingCodes | None = None,
    *,
    strategies: Mapping[str, DuplicateStrategy | str] | None = None,
    auto_resolve: bool = True,
    max_depth: int = MAX_HIERARCHY_DEPTH,
    check_departments: bool = True,
) -> ImportPlan:
    """Build an ``ImportPlan`` without touching the target store.

    Args:
        workbook: parser output
        existing: codes already persisted, queried once for the run
        strategies: duplicate strategy per code (matched case-insensitively)
        auto_resolve: use the recommended strategy for groups without an
            explicit one; otherwise such groups stay manual and block
        max_depth: deepest allowed hierarchy level
        check_departments: resolve positions' department codes; off when the
            existing departments are unknown (dry run without a database)
    """
    existing = existing or ExistingCodes()
    chosen = {
        normalize_code(code): DuplicateStrategy(strategy)
        for code, strategy in (strategies or {}).items()
    }

    departments = prepare_sheet(
        workbook.departments,
        SheetKind.DEPARTMENTS,
        existing.departments,
        strategies=chosen,
        auto_resolve=auto_resolve,
        max_depth=max_depth,
    )
    department_codes = None
    if check_departments:
        department_codes = {r.code for r in departments.rows} | set(existing.departments)
    positions = prepare_sheet(
        workbook.positions,
        SheetKind.POSITIONS,
        existing.positions,
        department_codes=department_codes,
        strategies=chosen,
        auto_resolve=auto_resolve,
        max_depth=max_depth,
    )
    plan = ImportPlan(departments=departments, positions=positions, source_name=workbook.source_name)
    summary = plan.summary
    logger.info(
        "plan: %d item(s) (%d create, %d update), blocked=%s",
        summary.total_rows,
        summary.departments.creates + summary.positions.creates,
        summary.departments.updates + summary.positions.updates,
        plan.blocked,
    )
    return plan


async def run_import(
    plan: ImportPlan,
    processor: Processor,
    *,
    config: ImportConfig | None = None,
    subscribers: Iterable[Subscriber] = (),
    manager: BatchImportManager | None = None,
) -> BatchImportResult:
    """Persist the plan's items through ``processor`` with a batch manager.

    Raises:
        PipelineError: the plan is blocked or has nothing to import
    """
    if plan.blocked:
        raise PipelineError("import blocked by validation errors")
    items = plan.items
    if not items:
        raise PipelineError("nothing to import")

    config = config or ImportConfig()
    manager = manager or BatchImportManager(config.batch)
    manager.initialize(items, processor)
    unsubscribers = [manager.subscribe(cb) for cb in subscribers]
    try:
        return await manager.start()
    finally:
        for unsubscribe in unsubscribers:
            unsubscribe()
