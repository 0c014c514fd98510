#!/usr/bin/env python3
"""Dataset generation script for performance testing.

Generates a synthetic organisation as import workbooks:
- departments.xlsx: a random department tree (dept_code, name, parent_dept_code, metadata)
- positions.xlsx: positions spread over those departments with reporting lines

Header on the first line, data from the second, as the importer expects.
"""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

import numpy as np
import pandas as pd

DEPARTMENT_NAMES = [
    "Operations", "Finance", "Engineering", "Sales", "Marketing", "Support",
    "Legal", "Research", "Logistics", "Procurement", "Quality", "Security",
]
POSITION_TITLES = ["Manager", "Lead", "Specialist", "Analyst", "Associate", "Coordinator"]


def generate_departments(count: int, max_depth: int = 6, seed: int = 42) -> pd.DataFrame:
    """Random tree: every department hangs below an earlier one, up to ``max_depth`` hops.

    Args:
        count: number of departments (the first one is the single root)
        max_depth: deepest level a department may sit on
        seed: random seed for reproducible data
    """
    rng = np.random.default_rng(seed)
    codes: list[str] = []
    parents: list[str] = []
    depths: list[int] = []
    for i in range(count):
        code = f"D{i:05d}"
        if i == 0:
            parent, depth = "-", 0
        else:
            candidates = [j for j in range(max(0, i - 50), i) if depths[j] < max_depth]
            j = int(rng.choice(candidates)) if candidates else 0
            parent, depth = codes[j], depths[j] + 1
        codes.append(code)
        parents.append(parent)
        depths.append(depth)

    names = [f"{DEPARTMENT_NAMES[int(k)]} {i}" for i, k in
             enumerate(rng.integers(0, len(DEPARTMENT_NAMES), count))]
    cost_centers = rng.integers(1000, 9999, count)
    metadata = [json.dumps({"cost_center": str(c)}) for c in cost_centers]
    return pd.DataFrame({
        "dept_code": codes,
        "name": names,
        "parent_dept_code": parents,
        "metadata": metadata,
    })


def generate_positions(departments: pd.DataFrame, per_department: int = 3, seed: int = 42) -> pd.DataFrame:
    """Positions per department; the first one manages, the rest report to it."""
    rng = np.random.default_rng(seed)
    rows = []
    for dept in departments["dept_code"]:
        manager_code = ""
        for k in range(per_department):
            code = f"P-{dept}-{k}"
            is_manager = k == 0
            rows.append({
                "pos_code": code,
                "title": ("Head" if is_manager else POSITION_TITLES[int(rng.integers(1, len(POSITION_TITLES)))]),
                "dept_code": dept,
                "reports_to_pos_code": manager_code,
                "is_manager": "yes" if is_manager else "no",
                "is_active": "yes" if rng.random() > 0.05 else "no",
                "incumbents_count": int(rng.integers(0, 5)),
            })
            if is_manager:
                manager_code = code
    return pd.DataFrame(rows)


def write_workbook(df: pd.DataFrame, output_path: Path, sheet_name: str) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_excel(output_path, sheet_name=sheet_name, index=False, engine="openpyxl")
    print(f"Created Excel file: {output_path} ({len(df):,} rows)")


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Generate synthetic department / position workbooks for performance testing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # 2,000 departments and 3 positions each into ./perf
  %(prog)s ./perf

  # Deep tree, fixed seed
  %(prog)s ./perf --departments 5000 --max-depth 18 --seed 7
        """,
    )
    parser.add_argument("output_dir", type=Path, help="Directory for the generated workbooks")
    parser.add_argument("--departments", type=int, default=2_000,
                        help="Number of departments (default: 2,000)")
    parser.add_argument("--positions-per-department", type=int, default=3,
                        help="Positions per department (default: 3)")
    parser.add_argument("--max-depth", type=int, default=6,
                        help="Deepest department level (default: 6)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    parser.add_argument("--dry-run", action="store_true",
                        help="Show what would be generated without creating files")
    args = parser.parse_args()

    if args.departments <= 0:
        print("Error: --departments must be positive", file=sys.stderr)
        return 1
    if args.positions_per_department < 0:
        print("Error: --positions-per-department must be >= 0", file=sys.stderr)
        return 1

    total_positions = args.departments * args.positions_per_department
    if args.dry_run:
        print(f"Would generate {args.departments:,} departments and {total_positions:,} positions "
              f"in {args.output_dir}")
        return 0

    departments = generate_departments(args.departments, args.max_depth, args.seed)
    write_workbook(departments, args.output_dir / "departments.xlsx", "Departments")
    if args.positions_per_department:
        positions = generate_positions(departments, args.positions_per_department, args.seed)
        write_workbook(positions, args.output_dir / "positions.xlsx", "Positions")
    return 0


if __name__ == "__main__":
    sys.exit(main())
