from __future__ import annotations

import logging

from sqlalchemy import inspect

from coverdesk.db.base import Base
from coverdesk.db.session import engine
import coverdesk.models  # noqa: F401

logger = logging.getLogger(__name__)

REQUIRED_TABLES: set[str] = {
    "absence_records",
    "coverage_requests",
    "coverage_assignments",
    "daily_pool_entries",
    "substitution_logs",
}


def missing_tables() -> list[str]:
    with engine.connect() as connection:
        existing = set(inspect(connection).get_table_names())
    return sorted(REQUIRED_TABLES - existing)


def ensure_runtime_schema_compatibility() -> None:
    try:
        missing = missing_tables()
        if not missing:
            return
        logger.info("Creating missing coverage tables: %s", ", ".join(missing))
        Base.metadata.create_all(bind=engine)
    except Exception as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Runtime schema compatibility bootstrap failed")
        raise RuntimeError("Runtime schema compatibility bootstrap failed") from exc
