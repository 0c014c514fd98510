from __future__ import annotations

import asyncio
import random
import time

from org_import.db.processor import DryRunProcessor
from org_import.models import BatchImportConfig, DepartmentRow, ImportConfig, ParsedWorkbook
from org_import.services.duplicates import detect_duplicates
from org_import.services.hierarchy import order_by_hierarchy
from org_import.services.pipeline import prepare_import, run_import
from org_import.validation.validator import validate

"""Performance smoke tests: a full-size sheet must plan and dry-run quickly.

Budgets are lenient so CI stays stable; they catch accidental quadratic work.
"""

SHEET_ROWS = 10_000  # MAX_ROWS_PER_SHEET


def _tree(count: int, max_depth: int = 8, seed: int = 7) -> list[DepartmentRow]:
    rng = random.Random(seed)
    depths = [0]
    rows = [DepartmentRow(row=2, code="D00000", name="Root")]
    for i in range(1, count):
        parent = rng.randrange(max(0, i - 50), i)
        while depths[parent] >= max_depth:
            parent -= 1
        depths.append(depths[parent] + 1)
        rows.append(DepartmentRow(row=i + 2, code=f"D{i:05d}", name=f"Dept {i}",
                                  parent_code=rows[parent].code))
    rng.shuffle(rows)
    return rows


def test_validate_full_sheet():
    rows = _tree(SHEET_ROWS)
    start = time.perf_counter()
    errors = validate(rows)
    elapsed = time.perf_counter() - start
    assert errors == []
    assert elapsed < 5.0, f"validation too slow: {elapsed:.3f}s"


def test_long_chain_has_no_recursion_limit():
    rows = [DepartmentRow(row=2, code="C0", name="C0")]
    rows += [DepartmentRow(row=i + 2, code=f"C{i}", name=f"C{i}", parent_code=f"C{i - 1}")
             for i in range(1, 5_000)]
    errors = validate(rows, max_depth=10_000)
    assert errors == []


def test_order_and_dedupe_full_sheet():
    rows = _tree(SHEET_ROWS)
    start = time.perf_counter()
    ordered = order_by_hierarchy(rows)
    assert detect_duplicates(rows) == []
    elapsed = time.perf_counter() - start
    position = {r.code: i for i, r in enumerate(ordered)}
    assert all(position[r.parent_code] < position[r.code] for r in ordered if r.parent_code)
    assert elapsed < 5.0, f"ordering too slow: {elapsed:.3f}s"


def test_dry_run_throughput():
    plan = prepare_import(ParsedWorkbook(departments=_tree(2_000)))
    config = ImportConfig(batch=BatchImportConfig(batch_size=100, delay_between_batches=0))
    processor = DryRunProcessor()
    start = time.perf_counter()
    result = asyncio.run(run_import(plan, processor, config=config))
    elapsed = time.perf_counter() - start
    assert result.success
    assert processor.calls == 20
    throughput = result.status.processed / elapsed
    assert throughput > 1_000, f"dry-run throughput too low: {throughput:.1f} items/s"
