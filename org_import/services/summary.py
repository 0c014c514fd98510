from __future__ import annotations

from ..models.batch_status import BatchImportResult
from ..models.import_item import OperationType

"""SUMMARY line rendering.

Format (one line, space separated ``key=value``):
SUMMARY total={n} succeeded={n} failed={n} created={n} updated={n}
cancelled={true|false} elapsed_sec={s} throughput_ips={items per second}
"""

__all__ = [
    "render_summary_line",
    "format_number",
]


def format_number(value: float) -> str:
    """Integers without a decimal point, small values without scientific notation."""
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return str(round(value, 3))


def render_summary_line(result: BatchImportResult) -> str:
    """Render the SUMMARY line for a finished (or cancelled) import.

    Examples:
        >>> from org_import.models import BatchImportResult, BatchImportStatus
        >>> status = BatchImportStatus(total=4, processed=4, succeeded=4, elapsed_time=2.0)
        >>> render_summary_line(BatchImportResult(success=True, status=status))
        'SUMMARY total=4 succeeded=4 failed=0 created=0 updated=0 cancelled=false elapsed_sec=2 throughput_ips=2'
    """
    status = result.status
    created = sum(1 for i in result.successful_items if i.operation is OperationType.CREATE)
    updated = sum(1 for i in result.successful_items if i.operation is OperationType.UPDATE)
    elapsed = status.elapsed_time
    throughput = status.processed / elapsed if elapsed > 0 else 0.0
    return (
        f"SUMMARY total={status.total} "
        f"succeeded={status.succeeded} "
        f"failed={status.failed} "
        f"created={created} "
        f"updated={updated} "
        f"cancelled={'true' if status.is_cancelled else 'false'} "
        f"elapsed_sec={format_number(elapsed)} "
        f"throughput_ips={format_number(throughput)}"
    )
