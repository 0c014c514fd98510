from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses for the org-structure importer.

These are the typed form of ``config/import.yml`` after
``org_import.config.loader.load_config`` has validated it against the packaged
JSON schema.
"""

__all__ = [
    "BatchImportConfig",
    "DatabaseConfig",
    "TableConfig",
    "ImportConfig",
    "DEFAULT_DEPARTMENT_COLUMNS",
    "DEFAULT_POSITION_COLUMNS",
]

# row attribute -> database column
DEFAULT_DEPARTMENT_COLUMNS = {
    "code": "dept_code",
    "name": "name",
    "parent_code": "parent_dept_code",
    "metadata": "metadata",
}
DEFAULT_POSITION_COLUMNS = {
    "code": "pos_code",
    "title": "title",
    "department_code": "dept_code",
    "reports_to_code": "reports_to_pos_code",
    "is_manager": "is_manager",
    "is_active": "is_active",
    "incumbents_count": "incumbents_count",
}


@dataclass(frozen=True)
class BatchImportConfig:
    """Batching / retry policy of the batch import manager.

    ``retry_delay`` and ``delay_between_batches`` are seconds. With the default
    ``retry_backoff`` of 1.0 every retry waits exactly ``retry_delay``; a larger
    factor grows the wait exponentially, never below ``retry_delay``.
    """
    batch_size: int = 10
    delay_between_batches: float = 0.1
    retry_attempts: int = 2
    retry_delay: float = 1.0
    retry_backoff: float = 1.0
    auto_batch_size: bool = False  # batch_size: auto in the config file

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if self.retry_attempts < 0:
            raise ValueError("retry_attempts must be >= 0")
        if self.retry_delay < 0 or self.delay_between_batches < 0:
            raise ValueError("delays must be >= 0")
        if self.retry_backoff < 1:
            raise ValueError("retry_backoff must be >= 1")


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection fallback; environment variables take precedence."""
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class TableConfig:
    """Target table of one sheet kind."""
    table: str
    columns: dict[str, str]  # row attribute -> column name

    @property
    def code_column(self) -> str:
        return self.columns["code"]


@dataclass(frozen=True)
class ImportConfig:
    """Root configuration object."""
    batch: BatchImportConfig = field(default_factory=BatchImportConfig)
    departments: TableConfig = field(
        default_factory=lambda: TableConfig("departments", dict(DEFAULT_DEPARTMENT_COLUMNS))
    )
    positions: TableConfig = field(
        default_factory=lambda: TableConfig("positions", dict(DEFAULT_POSITION_COLUMNS))
    )
    max_hierarchy_depth: int = 20
    logs_directory: str = "./logs"
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
