"""
BigQuery result fetcher for the GA4 events export.

`BigQueryFetcher.fetch(descriptor)` runs one aggregate query over the daily
``events_YYYYMMDD`` shards and returns flat row dicts:
  1. Dimensions and metrics map to SQL expressions; every selected field is an alias
  2. Date bounds, the limit and provider filter expressions are query parameters
  3. Order-bys are sent as an ORDER BY hint (client-side sort still runs afterwards)
  4. google.api_core errors map to operator-readable ProviderError messages
"""
from __future__ import annotations

from typing import Any

from google.api_core import exceptions as google_exceptions
from google.auth.exceptions import DefaultCredentialsError
from google.cloud import bigquery

from src.core.config import Settings, get_settings
from src.core.errors import ProviderError
from src.core.logging import get_logger
from src.query.descriptor import QueryDescriptor

logger = get_logger(__name__)

_EVENT_PARAM = "(SELECT value.{kind}_value FROM UNNEST(event_params) WHERE key = '{key}')"

DIMENSION_EXPRESSIONS: dict[str, str] = {
    "event_name": "event_name",
    "event_date": "event_date",
    "platform": "platform",
    "country": "geo.country",
    "device_category": "device.category",
    "page_location": _EVENT_PARAM.format(kind="string", key="page_location"),
}

METRIC_EXPRESSIONS: dict[str, str] = {
    "event_count": "COUNT(*)",
    "user_count": "COUNT(DISTINCT user_pseudo_id)",
    "session_count": (
        "COUNT(DISTINCT CONCAT(user_pseudo_id, '.', CAST("
        + _EVENT_PARAM.format(kind="int", key="ga_session_id")
        + " AS STRING)))"
    ),
}

# Provider filter operators -> WHERE templates; {param} is a STRING query parameter
FILTER_TEMPLATES: dict[str, str] = {
    "equals": "{expr} = @{param}",
    "notEquals": "{expr} != @{param}",
    "contains": "STRPOS({expr}, @{param}) > 0",
    "notContains": "STRPOS({expr}, @{param}) = 0",
    "includingRegex": "REGEXP_CONTAINS({expr}, @{param})",
    "excludingRegex": "NOT REGEXP_CONTAINS({expr}, @{param})",
}


def _expression(table: dict[str, str], name: str, kind: str) -> str:
    try:
        return table[name]
    except KeyError:
        raise ProviderError(f"BigQuery source has no {kind} '{name}'", status=400) from None


def build_query(
    descriptor: QueryDescriptor, table_path: str
) -> tuple[str, list[bigquery.ScalarQueryParameter]]:
    """Return the SQL text and its query parameters for *descriptor*."""
    select = [
        f"{_expression(DIMENSION_EXPRESSIONS, d, 'dimension')} AS `{d}`"
        for d in descriptor.dimensions
    ]
    select += [
        f"{_expression(METRIC_EXPRESSIONS, m, 'metric')} AS `{m}`"
        for m in descriptor.metrics
    ]
    params = [
        bigquery.ScalarQueryParameter("start_suffix", "STRING", descriptor.date_range.start.strftime("%Y%m%d")),
        bigquery.ScalarQueryParameter("end_suffix", "STRING", descriptor.date_range.end.strftime("%Y%m%d")),
        bigquery.ScalarQueryParameter("row_limit", "INT64", descriptor.limit),
    ]

    where = ["_TABLE_SUFFIX BETWEEN @start_suffix AND @end_suffix"]
    for index, f in enumerate(descriptor.filters):
        template = FILTER_TEMPLATES.get(f.operator)
        if template is None:
            raise ProviderError(f"Unsupported BigQuery filter operator: {f.operator}", status=400)
        param = f"filter_{index}"
        expr = _expression(DIMENSION_EXPRESSIONS, f.dimension, "dimension")
        where.append(template.format(expr=expr, param=param))
        params.append(bigquery.ScalarQueryParameter(param, "STRING", f.expression))

    lines = [
        f"SELECT {', '.join(select)}",
        f"FROM `{table_path}`",
        "WHERE " + "\n  AND ".join(where),
        "GROUP BY " + ", ".join(str(i + 1) for i in range(len(descriptor.dimensions))),
    ]
    if descriptor.order_bys:
        order = ", ".join(
            f"`{o.field}` {'DESC' if o.descending else 'ASC'}" for o in descriptor.order_bys
        )
        lines.append(f"ORDER BY {order}")
    lines.append("LIMIT @row_limit")
    return "\n".join(lines), params


def row_to_record(row: Any, descriptor: QueryDescriptor) -> dict[str, Any]:
    """Flatten a result row; NULL dimensions become "" and NULL metrics stay absent."""
    record: dict[str, Any] = {}
    for dimension in descriptor.dimensions:
        value = row.get(dimension)
        record[dimension] = "" if value is None else value
    for metric in descriptor.metrics:
        value = row.get(metric)
        if value is not None:
            record[metric] = value
    return record


def _error_detail(exc: google_exceptions.GoogleAPICallError) -> str:
    return getattr(exc, "message", None) or str(exc)


def _provider_error(
    exc: google_exceptions.GoogleAPICallError, project_id: str, dataset: str
) -> ProviderError:
    status = int(exc.code) if exc.code else None
    if isinstance(exc, google_exceptions.Forbidden):
        message = (
            f"BigQuery access denied. Check that your account has access to project "
            f"{project_id} and holds the \"Job User\" and \"Data Viewer\" roles."
        )
    elif isinstance(exc, google_exceptions.NotFound):
        message = (
            f"BigQuery project {project_id} or dataset {dataset} not found. "
            f"Check BQ_PROJECT_ID and BQ_DATASET."
        )
    elif isinstance(exc, google_exceptions.BadRequest):
        message = f"Invalid BigQuery query: {_error_detail(exc)}"
    else:
        message = f"BigQuery API error: {_error_detail(exc)}"
    return ProviderError(message, status=status)


class BigQueryFetcher:
    """Fetches aggregated GA4 export rows from one BigQuery dataset.

    Parameters
    ----------
    project_id, dataset : str
        Where the export lives; both are required before a fetch.
    table : str
        Wildcard table name, ``events_*`` for the standard daily export.
    client : optional
        A prebuilt ``bigquery.Client``; built with Application Default
        Credentials when omitted.
    """

    def __init__(
        self,
        project_id: str,
        dataset: str,
        table: str = "events_*",
        location: str = "US",
        client: Any = None,
    ):
        self.project_id = project_id
        self.dataset = dataset
        self.table = table
        self.location = location
        self._client = client
        # Row cache scope
        self.site_url = f"bigquery:{self.table_path}"

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "BigQueryFetcher":
        settings = settings or get_settings()
        return cls(
            settings.bq_project_id,
            settings.bq_dataset,
            table=settings.bq_events_table,
            location=settings.bq_location,
        )

    @property
    def table_path(self) -> str:
        return f"{self.project_id}.{self.dataset}.{self.table}"

    @property
    def client(self) -> Any:
        if self._client is None:
            try:
                self._client = bigquery.Client(project=self.project_id, location=self.location)
            except DefaultCredentialsError as exc:
                raise ProviderError(
                    "BigQuery credentials not found. Run "
                    "'gcloud auth application-default login' or set GOOGLE_APPLICATION_CREDENTIALS."
                ) from exc
        return self._client

    def fetch(self, descriptor: QueryDescriptor) -> list[dict[str, Any]]:
        if not self.project_id:
            raise ProviderError("BigQuery project ID is required. Set BQ_PROJECT_ID.")
        if not self.dataset:
            raise ProviderError("BigQuery dataset is required. Set BQ_DATASET.")

        sql, params = build_query(descriptor, self.table_path)
        job_config = bigquery.QueryJobConfig(query_parameters=params)
        logger.info("Querying BigQuery %s | %s..%s | dims=%s | limit=%d",
                    self.table_path, descriptor.date_range.start, descriptor.date_range.end,
                    list(descriptor.dimensions), descriptor.limit)

        try:
            result = self.client.query(sql, job_config=job_config).result()
            rows = [row_to_record(row, descriptor) for row in result]
        except google_exceptions.GoogleAPICallError as exc:
            logger.exception("BigQuery query failed")
            raise _provider_error(exc, self.project_id, self.dataset) from exc

        logger.info("BigQuery returned %d rows (requested limit: %d)", len(rows), descriptor.limit)
        return rows
