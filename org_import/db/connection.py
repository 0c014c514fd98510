from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import psycopg2

from ..models.config_models import DatabaseConfig

"""psycopg2 connection handling.

Settings are resolved before this point: ``apply_env_overrides`` has already
merged ``DATABASE_URL`` / ``PG*`` from the environment (and ``.env``) over the
config file's ``database`` section.
"""

__all__ = [
    "build_dsn",
    "connect",
]

logger = logging.getLogger(__name__)


def build_dsn(db: DatabaseConfig) -> str:
    if db.dsn:
        return db.dsn
    parts = [
        f"host={db.host or 'localhost'}",
        f"port={db.port or 5432}",
        f"user={db.user or 'postgres'}",
        f"dbname={db.database or 'postgres'}",
    ]
    if db.password:
        parts.append(f"password={db.password}")
    return " ".join(parts)


@contextmanager
def connect(db: DatabaseConfig) -> Iterator[Any]:
    """Yield a psycopg2 connection with explicit transactions.

    Uncommitted work is rolled back when the block raises; the connection is
    always closed.
    """
    conn = psycopg2.connect(build_dsn(db))
    conn.autocommit = False
    logger.debug("connected to %s", conn.dsn.split(" password=")[0])
    try:
        yield conn
    except BaseException:
        if not conn.closed:
            conn.rollback()
        raise
    finally:
        conn.close()
