"""
Query audit log -- records every request -> descriptor -> rows cycle.

The table is created automatically on first use via `ensure_log_table()`.
"""
from __future__ import annotations

import json
from typing import Any

from sqlalchemy import text

from src.db.connection import get_engine
from src.core.logging import get_logger

logger = get_logger(__name__)

_TABLE = "gsc_query_logs"

_CREATE_SQL = f"""
CREATE TABLE IF NOT EXISTS {_TABLE} (
    id              INTEGER PRIMARY KEY,
    mode            VARCHAR(20) NOT NULL,
    source          VARCHAR(40) NOT NULL,
    preset          VARCHAR(80),
    start_date      VARCHAR(10),
    end_date        VARCHAR(10),
    metrics         TEXT,          -- JSON array
    dimensions      TEXT,          -- JSON array
    sort_spec       TEXT,
    filters         TEXT,          -- JSON array of descriptions
    fetched_rows    INTEGER,
    result_rows     INTEGER,
    success         BOOLEAN NOT NULL,
    errors          TEXT,          -- JSON array
    latency_ms      INTEGER,
    created_at      TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);
"""


def ensure_log_table() -> None:
    """Create the query log table if it doesn't exist."""
    engine = get_engine()
    with engine.connect() as conn:
        conn.execute(text(_CREATE_SQL))
        conn.commit()
    logger.debug("Query log table '%s' ensured", _TABLE)


def log_query(
    mode: str,
    source: str,
    preset: str | None,
    descriptor: dict[str, Any] | None,
    sort_spec: str,
    filters: list[str],
    fetched_rows: int,
    result_rows: int,
    errors: list[str],
    latency_ms: int,
) -> None:
    """Insert one row into the query log table."""
    ensure_log_table()
    date_range = (descriptor or {}).get("date_range") or {}
    params = {
        "mode": mode,
        "source": source,
        "preset": preset,
        "start_date": str(date_range["start"]) if date_range else None,
        "end_date": str(date_range["end"]) if date_range else None,
        "metrics": json.dumps(list(descriptor["metrics"])) if descriptor else None,
        "dimensions": json.dumps(list(descriptor["dimensions"])) if descriptor else None,
        "sort_spec": sort_spec,
        "filters": json.dumps(filters) if filters else None,
        "fetched_rows": fetched_rows,
        "result_rows": result_rows,
        "success": not errors,
        "errors": json.dumps(errors) if errors else None,
        "latency_ms": latency_ms,
    }
    insert_sql = text(f"""
        INSERT INTO {_TABLE}
            (mode, source, preset, start_date, end_date, metrics, dimensions,
             sort_spec, filters, fetched_rows, result_rows, success, errors,
             latency_ms)
        VALUES
            (:mode, :source, :preset, :start_date, :end_date, :metrics, :dimensions,
             :sort_spec, :filters, :fetched_rows, :result_rows, :success, :errors,
             :latency_ms)
    """)
    with get_engine().connect() as conn:
        conn.execute(insert_sql, params)
        conn.commit()
    logger.debug("Query logged: mode=%s preset=%s rows=%d", mode, preset, result_rows)


def recent_queries(limit: int = 50) -> list[dict[str, Any]]:
    """Return the newest *limit* log entries, newest first."""
    ensure_log_table()
    with get_engine().connect() as conn:
        result = conn.execute(
            text(f"SELECT * FROM {_TABLE} ORDER BY id DESC LIMIT :limit"),
            {"limit": limit},
        )
        entries = [dict(row._mapping) for row in result]
    for entry in entries:
        for key in ("metrics", "dimensions", "filters", "errors"):
            entry[key] = json.loads(entry[key]) if entry[key] else []
        entry["success"] = bool(entry["success"])
        entry["created_at"] = str(entry["created_at"])
    return entries
