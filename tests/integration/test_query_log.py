"""
Integration tests -- query audit log.

Runs against the SQLite file configured for the test session.
"""
from __future__ import annotations

import datetime

import pytest
from sqlalchemy import text

try:
    from src.db.connection import get_engine

    engine = get_engine()
    with engine.connect() as _conn:
        _conn.execute(text("SELECT 1"))
    DB_AVAILABLE = True
except Exception:
    DB_AVAILABLE = False

pytestmark = pytest.mark.skipif(not DB_AVAILABLE, reason="Query log database not reachable")

from src.core.config import Settings
from src.core.errors import QueryValidationError
from src.db.query_log import ensure_log_table, log_query, recent_queries
from src.insights.service import run_query
from src.query.descriptor import QueryRequest

_DESCRIPTOR = {
    "source": "searchconsole",
    "date_range": {"start": "2024-01-01", "end": "2024-01-07"},
    "metrics": ["clicks", "ctr"],
    "dimensions": ["query"],
    "order_bys": [],
    "limit": 100,
    "filters": [],
}


def _count() -> int:
    with get_engine().connect() as conn:
        return conn.execute(text("SELECT COUNT(*) FROM gsc_query_logs")).scalar()


def test_ensure_log_table_idempotent():
    """Calling ensure_log_table() multiple times must not raise."""
    ensure_log_table()
    ensure_log_table()


def test_log_query_inserts_row():
    ensure_log_table()
    before = _count()
    log_query(
        mode="adhoc",
        source="searchconsole",
        preset=None,
        descriptor=_DESCRIPTOR,
        sort_spec="clicks desc",
        filters=['query contains "shoe"'],
        fetched_rows=10,
        result_rows=4,
        errors=[],
        latency_ms=42,
    )
    assert _count() == before + 1


def test_recent_queries_round_trip():
    log_query(
        mode="preset",
        source="searchconsole",
        preset="top-queries",
        descriptor=_DESCRIPTOR,
        sort_spec="clicks desc",
        filters=[],
        fetched_rows=50,
        result_rows=50,
        errors=[],
        latency_ms=7,
    )
    entry = recent_queries(1)[0]
    assert entry["preset"] == "top-queries"
    assert entry["start_date"] == "2024-01-01"
    assert entry["metrics"] == ["clicks", "ctr"]
    assert entry["filters"] == []
    assert entry["success"] is True


def test_log_query_records_errors():
    log_query(
        mode="adhoc",
        source="searchconsole",
        preset=None,
        descriptor=None,
        sort_spec="",
        filters=[],
        fetched_rows=0,
        result_rows=0,
        errors=["At least one dimension is required"],
        latency_ms=0,
    )
    entry = recent_queries(1)[0]
    assert entry["success"] is False
    assert entry["errors"] == ["At least one dimension is required"]
    assert entry["metrics"] == []


def test_rejected_request_is_audited(make_fetcher):
    with pytest.raises(QueryValidationError):
        run_query(
            QueryRequest(mode="preset", preset="missing-preset"),
            fetcher=make_fetcher(),
            settings=Settings(query_log_enabled=True),
            today=datetime.date(2024, 3, 15),
        )
    entry = recent_queries(1)[0]
    assert entry["preset"] == "missing-preset"
    assert entry["success"] is False


def test_recent_queries_newest_first():
    for latency in (1, 2, 3):
        log_query("adhoc", "searchconsole", None, _DESCRIPTOR, "", [], 1, 1, [], latency)
    latencies = [e["latency_ms"] for e in recent_queries(3)]
    assert latencies == [3, 2, 1]
