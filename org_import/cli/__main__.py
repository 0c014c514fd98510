from __future__ import annotations

import argparse
import asyncio
import os
import signal
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from org_import.config.loader import ConfigError, apply_env_overrides, load_config
from org_import.db.connection import connect
from org_import.db.existing_codes import fetch_existing_codes
from org_import.db.processor import DryRunProcessor, PostgresItemProcessor
from org_import.excel.reader import WorkbookError, check_upload, parse_workbook, write_template
from org_import.logging.error_log import ErrorLogBuffer, ErrorRecord
from org_import.logging.init import log_summary, setup_logging
from org_import.models.batch_status import BatchImportResult
from org_import.models.config_models import ImportConfig
from org_import.models.duplicates import DuplicateStrategy
from org_import.models.import_item import ExistingCodes
from org_import.models.rows import SheetKind
from org_import.models.workbook import ParsedWorkbook
from org_import.services.batch_manager import BatchImportManager, Processor
from org_import.services.duplicates import strategy_label
from org_import.services.pipeline import ImportPlan, prepare_import, run_import
from org_import.services.progress import BatchProgressBar
from org_import.services.summary import render_summary_line

"""CLI entrypoint: ``python -m org_import.cli FILE --kind departments|positions``.

Flow: load .env and config -> check and parse the upload -> query existing
codes -> validate / resolve duplicates / classify -> batch import -> SUMMARY.

Exit codes:
- 0: every item imported
- 2: some items failed, or the run was cancelled (Ctrl+C)
- 1: fatal (config, unreadable file, database) or import blocked by validation
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

INSPECT_SAMPLE_ROWS = 5


def _strategy_arg(value: str) -> tuple[str, DuplicateStrategy]:
    code, sep, name = value.partition("=")
    if not sep or not code.strip():
        raise argparse.ArgumentTypeError(f"expected CODE=STRATEGY, got {value!r}")
    try:
        return code.strip(), DuplicateStrategy(name.strip().lower())
    except ValueError:
        choices = ", ".join(s.value for s in DuplicateStrategy)
        raise argparse.ArgumentTypeError(f"unknown strategy {name!r} (choose from {choices})") from None


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="org-import",
        description="Import departments or positions from a spreadsheet into PostgreSQL",
    )
    p.add_argument("file", type=Path, help="Spreadsheet to import (or template to write with --template)")
    p.add_argument("--kind", required=True, choices=[k.value for k in SheetKind],
                   help="Which records the spreadsheet contains")
    p.add_argument("--config", type=Path, default=None,
                   help="YAML config (default: config/import.yml when present)")
    p.add_argument("--dry-run", action="store_true",
                   help="Validate and classify, but do not write to the database")
    p.add_argument("--strategy", action="append", type=_strategy_arg, default=[], metavar="CODE=STRATEGY",
                   help="Duplicate resolution for one code (repeatable)")
    p.add_argument("--no-auto-resolve", action="store_true",
                   help="Do not apply recommended strategies; unresolved duplicates block the import")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true",
                   help="Print the parsed rows of the upload then exit")
    p.add_argument("--template", action="store_true",
                   help="Write an empty import template to FILE then exit")
    return p.parse_args(argv)


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env; its values win over the process environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _inspect_data(workbook: ParsedWorkbook, kind: SheetKind) -> int:
    rows = workbook.rows_for(kind)
    print(f"FILE: {workbook.source_name} kind={kind.value} rows={len(rows)}")
    for row in rows[:INSPECT_SAMPLE_ROWS]:
        print(f"  row {row.row}: {row.to_data()}")
    if len(rows) > INSPECT_SAMPLE_ROWS:
        print(f"  ... {len(rows) - INSPECT_SAMPLE_ROWS} more")
    return EXIT_SUCCESS_ALL


def _report_plan(plan: ImportPlan, errors: ErrorLogBuffer, logger: Any) -> None:
    for error in plan.validation_errors:
        if error.is_error:
            logger.error(error.describe())
            errors.append(ErrorRecord.from_validation_error(plan.source_name, error))
        else:
            logger.warning(error.describe())
    for entry, resolution in zip(plan.duplicates, plan.resolutions, strict=True):
        logger.info(
            f"duplicate {entry.sheet.item_type} code '{entry.value}' rows={entry.row_numbers}: "
            f"{strategy_label(resolution.strategy)} ({entry.reason})"
        )
    summary = plan.summary
    for name, entity in (("departments", summary.departments), ("positions", summary.positions)):
        if entity.total:
            logger.info(f"{name}: {entity.total} to import ({entity.creates} create, {entity.updates} update)")


async def _run(plan: ImportPlan, processor: Processor, cfg: ImportConfig, logger: Any) -> BatchImportResult:
    manager = BatchImportManager(cfg.batch)
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, manager.cancel)
        handler_installed = True
    except (NotImplementedError, RuntimeError):  # not on the main thread / Windows
        handler_installed = False
    try:
        with BatchProgressBar(f"Importing {plan.source_name}") as bar:
            return await run_import(plan, processor, config=cfg, subscribers=[bar], manager=manager)
    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)
        if manager.get_status().is_cancelled:
            logger.warning("import cancelled; remaining batches were skipped")


def _record_failures(result: BatchImportResult, plan: ImportPlan, errors: ErrorLogBuffer, logger: Any) -> None:
    rows = {item.id: item.row for item in plan.items}
    for err in result.errors:
        logger.error(f"{err.item_type} '{err.data.get('code', err.item_id)}' failed after "
                     f"{err.attempt} attempt(s): {err.error}")
        errors.append(ErrorRecord.from_batch_error(plan.source_name, err, rows.get(err.item_id)))


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    logger = setup_logging(debug=args.debug)
    _load_env_file(Path(".env"), override=True)

    try:
        cfg = apply_env_overrides(load_config(args.config))
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    kind = SheetKind(args.kind)
    if args.template:
        write_template(args.file, kind)
        return EXIT_SUCCESS_ALL

    errors = ErrorLogBuffer(cfg.logs_directory)
    try:
        check_upload(args.file)
        workbook = parse_workbook(args.file, kind)
    except WorkbookError as e:
        logger.error(f"file: {e}")
        errors.append(ErrorRecord.create(args.file.name, kind.value, -1, "INVALID_FILE_FORMAT", str(e)))
        errors.flush()
        return EXIT_FATAL

    if args.inspect_data:
        return _inspect_data(workbook, kind)

    dry_run = args.dry_run or os.getenv("DISABLE_DB_CONNECT") == "1"
    strategies = dict(args.strategy)
    auto_resolve = not args.no_auto_resolve

    def plan_for(existing: ExistingCodes, *, check_departments: bool = True) -> ImportPlan:
        plan = prepare_import(
            workbook, existing,
            strategies=strategies,
            auto_resolve=auto_resolve,
            max_depth=cfg.max_hierarchy_depth,
            check_departments=check_departments,
        )
        _report_plan(plan, errors, logger)
        return plan

    if dry_run:
        logger.debug("dry run: no database connection")
        plan = plan_for(ExistingCodes(), check_departments=False)
        if plan.blocked:
            return _blocked(errors, logger)
        result = asyncio.run(_run(plan, DryRunProcessor(), cfg, logger))
    else:
        try:
            with connect(cfg.database) as conn:
                with conn.cursor() as cur:
                    existing = fetch_existing_codes(cur, cfg.departments, cfg.positions)
                conn.rollback()  # end the read-only transaction
                plan = plan_for(existing)
                if plan.blocked:
                    return _blocked(errors, logger)
                processor = PostgresItemProcessor(
                    conn, {"department": cfg.departments, "position": cfg.positions}
                )
                result = asyncio.run(_run(plan, processor, cfg, logger))
        except Exception as e:  # psycopg2 connect / systemic database failures
            logger.error(f"database: {e}")
            errors.append(ErrorRecord.create(args.file.name, kind.value, -1, "DATABASE_ERROR", str(e)))
            errors.flush()
            return EXIT_FATAL

    mode = "dry-run" if dry_run else "live"
    logger.info(f"mode={mode} batches={result.total_batches} avg_batch_sec={result.avg_batch_seconds:.3f}")
    _record_failures(result, plan, errors, logger)

    # log_summary adds the "SUMMARY " label itself
    log_summary(render_summary_line(result)[len("SUMMARY "):])
    log_path = errors.flush()
    if log_path is not None:
        logger.info(f"error log: {log_path}")

    if result.success:
        return EXIT_SUCCESS_ALL
    return EXIT_PARTIAL_FAILURE


def _blocked(errors: ErrorLogBuffer, logger: Any) -> int:
    logger.error("import blocked by validation errors; nothing was written")
    log_path = errors.flush()
    if log_path is not None:
        logger.info(f"error log: {log_path}")
    return EXIT_FATAL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
