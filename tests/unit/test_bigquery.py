"""
Unit tests -- BigQuery (GA4 export) fetcher with a fake client (no network).
"""
import datetime

import pytest
from google.api_core import exceptions as google_exceptions
from google.cloud import bigquery

from src.core.config import Settings
from src.core.errors import ProviderError
from src.insights.service import get_fetcher
from src.query.descriptor import DataSource, DateRange, OrderBy, ProviderFilter, QueryDescriptor
from src.sources.bigquery import BigQueryFetcher, build_query, row_to_record

TABLE = "proj.analytics_1.events_*"


def _descriptor(**overrides) -> QueryDescriptor:
    fields = {
        "source": DataSource.BIGQUERY,
        "date_range": DateRange(start=datetime.date(2024, 1, 1), end=datetime.date(2024, 1, 7)),
        "metrics": ("event_count",),
        "dimensions": ("event_name", "page_location"),
        "limit": 100,
    }
    fields.update(overrides)
    return QueryDescriptor(**fields)


class _Job:
    def __init__(self, rows, error):
        self._rows = rows
        self._error = error

    def result(self):
        if self._error is not None:
            raise self._error
        return iter(self._rows)


class FakeClient:
    """Mimics `client.query(sql, job_config=...).result()`."""

    def __init__(self, rows=None, error=None):
        self.rows = rows or []
        self.error = error
        self.queries = []

    def query(self, sql, job_config=None):
        self.queries.append((sql, job_config))
        return _Job(self.rows, self.error)


def _fetcher(client) -> BigQueryFetcher:
    return BigQueryFetcher("proj", "analytics_1", client=client)


# ── SQL building ─────────────────────────────────────────

def test_select_group_and_limit():
    sql, _ = build_query(_descriptor(), TABLE)
    assert sql.startswith("SELECT event_name AS `event_name`, ")
    assert "WHERE key = 'page_location') AS `page_location`" in sql
    assert "COUNT(*) AS `event_count`" in sql
    assert f"FROM `{TABLE}`" in sql
    assert "GROUP BY 1, 2" in sql
    assert sql.endswith("LIMIT @row_limit")
    assert "ORDER BY" not in sql


def test_dates_and_limit_are_parameters():
    _, params = build_query(_descriptor(limit=250), TABLE)
    assert [(p.name, p.type_, p.value) for p in params] == [
        ("start_suffix", "STRING", "20240101"),
        ("end_suffix", "STRING", "20240107"),
        ("row_limit", "INT64", 250),
    ]


def test_order_bys_become_order_clause():
    d = _descriptor(order_bys=(OrderBy(field="event_count", descending=True),
                               OrderBy(field="event_name")))
    sql, _ = build_query(d, TABLE)
    assert "ORDER BY `event_count` DESC, `event_name` ASC" in sql


@pytest.mark.parametrize("operator,clause", [
    ("equals", "event_name = @filter_0"),
    ("notEquals", "event_name != @filter_0"),
    ("contains", "STRPOS(event_name, @filter_0) > 0"),
    ("notContains", "STRPOS(event_name, @filter_0) = 0"),
    ("includingRegex", "REGEXP_CONTAINS(event_name, @filter_0)"),
    ("excludingRegex", "NOT REGEXP_CONTAINS(event_name, @filter_0)"),
])
def test_filter_operators(operator, clause):
    d = _descriptor(filters=(ProviderFilter(dimension="event_name", operator=operator,
                                            expression="page_view"),))
    sql, params = build_query(d, TABLE)
    assert f"AND {clause}" in sql
    assert (params[-1].name, params[-1].value) == ("filter_0", "page_view")


def test_filter_expression_never_inlined():
    d = _descriptor(filters=(ProviderFilter(dimension="event_name", expression="x' OR 1=1 --"),))
    sql, _ = build_query(d, TABLE)
    assert "OR 1=1" not in sql


def test_unknown_metric_rejected():
    with pytest.raises(ProviderError, match="no metric 'revenue'"):
        build_query(_descriptor(metrics=("revenue",)), TABLE)


# ── Ingestion ────────────────────────────────────────────

def test_null_metric_stays_absent_and_null_dimension_is_empty():
    d = _descriptor(metrics=("event_count", "user_count"))
    record = row_to_record({"event_name": "click", "page_location": None,
                            "event_count": 7, "user_count": None}, d)
    assert record == {"event_name": "click", "page_location": "", "event_count": 7}


# ── fetch ────────────────────────────────────────────────

def test_fetch_runs_parameterized_job():
    client = FakeClient(rows=[
        {"event_name": "page_view", "page_location": "/a", "event_count": 12},
        {"event_name": "scroll", "page_location": "/a", "event_count": 3},
    ])
    rows = _fetcher(client).fetch(_descriptor())
    assert rows[0] == {"event_name": "page_view", "page_location": "/a", "event_count": 12}
    assert len(rows) == 2
    sql, job_config = client.queries[0]
    assert isinstance(job_config, bigquery.QueryJobConfig)
    assert "_TABLE_SUFFIX BETWEEN @start_suffix AND @end_suffix" in sql


def test_missing_project_or_dataset():
    with pytest.raises(ProviderError, match="project ID is required"):
        BigQueryFetcher("", "analytics_1", client=FakeClient()).fetch(_descriptor())
    with pytest.raises(ProviderError, match="dataset is required"):
        BigQueryFetcher("proj", "", client=FakeClient()).fetch(_descriptor())


@pytest.mark.parametrize("error,status,fragment", [
    (google_exceptions.Forbidden("denied"), 403, "BigQuery access denied"),
    (google_exceptions.NotFound("no dataset"), 404, "dataset analytics_1 not found"),
    (google_exceptions.BadRequest("Syntax error"), 400, "Invalid BigQuery query: Syntax error"),
    (google_exceptions.InternalServerError("backend"), 500, "BigQuery API error: backend"),
])
def test_api_errors_mapped(error, status, fragment):
    with pytest.raises(ProviderError, match=fragment) as exc_info:
        _fetcher(FakeClient(error=error)).fetch(_descriptor())
    assert exc_info.value.status == status


def test_cache_scope_names_the_table():
    assert _fetcher(FakeClient()).site_url == f"bigquery:{TABLE}"


def test_get_fetcher_builds_bigquery_from_settings():
    settings = Settings(bq_project_id="proj", bq_dataset="analytics_1", query_log_enabled=False)
    fetcher = get_fetcher("bigquery", settings)
    assert isinstance(fetcher, BigQueryFetcher)
    assert fetcher.table_path == TABLE
