"""
Insights service -- orchestrates normalize -> fetch -> sort -> filter -> log.

Full pipeline shared by the HTTP facade and the CLI. The fetcher call is the
only external round trip; its rows are cached and treated as immutable, and
every call builds its own SortSpec and FilterState so concurrent requests
never share shaping state.

Sorting: the caller's SortSpec wins. When none is given, the descriptor's
provider-side order-bys are applied client-side, since provider ordering is
only a hint.
"""
from __future__ import annotations

import datetime
from typing import Any, Protocol

from src.core.config import Settings, get_settings
from src.core.errors import ProviderError, QueryValidationError
from src.core.logging import get_logger
from src.core.utils import timer
from src.db.query_log import log_query
from src.insights.cache import get_cache
from src.query.catalog import Catalog
from src.query.descriptor import DataSource, QueryDescriptor, QueryRequest
from src.query.normalizer import normalize
from src.shaping.filters import FilterState, NumericFilter, StringFilter, build_filter_state
from src.shaping.pagination import PageView, paginate
from src.shaping.sorting import SortSpec, parse_sort_spec, sort_rows
from src.sources.bigquery import BigQueryFetcher
from src.sources.searchconsole import SearchConsoleFetcher

logger = get_logger(__name__)


class RowFetcher(Protocol):
    def fetch(self, descriptor: QueryDescriptor) -> list[dict[str, Any]]:
        ...


class QueryResult:
    def __init__(
        self,
        descriptor: QueryDescriptor,
        fetched_rows: list[dict[str, Any]],
        rows: list[dict[str, Any]],
        sort_spec: SortSpec,
        filters: FilterState,
        warnings: list[str] | None = None,
        latency_ms: int = 0,
        cached: bool = False,
        rows_per_page: int = 50,
    ):
        self.descriptor = descriptor
        self.fetched_rows = fetched_rows
        self.rows = rows
        self.sort_spec = sort_spec
        self.filters = filters
        self.warnings = warnings or []
        self.latency_ms = latency_ms
        self.cached = cached
        self.rows_per_page = rows_per_page

    @property
    def total_fetched(self) -> int:
        return len(self.fetched_rows)

    @property
    def total_rows(self) -> int:
        return len(self.rows)

    def page(self, index: int) -> PageView:
        return paginate(self.rows, index, self.rows_per_page)


def get_fetcher(source: DataSource | str, settings: Settings | None = None) -> RowFetcher:
    """Return the fetcher for *source*, bound to the configured site or dataset."""
    settings = settings or get_settings()
    source = DataSource(source)
    if source is DataSource.SEARCHCONSOLE:
        return SearchConsoleFetcher(settings.gsc_site_url, settings=settings)
    if source is DataSource.BIGQUERY:
        return BigQueryFetcher.from_settings(settings)
    raise ValueError(f"Unsupported source: {source}")


def fetch_rows(
    descriptor: QueryDescriptor, fetcher: RowFetcher, use_cache: bool = True
) -> tuple[list[dict[str, Any]], bool]:
    """Fetch rows for *descriptor*, serving repeats from the row cache."""
    site_url = getattr(fetcher, "site_url", "")
    cache = get_cache()
    if use_cache:
        cached_rows = cache.get(site_url, descriptor)
        if cached_rows is not None:
            logger.info("Cache HIT for %s rows=%d", site_url, len(cached_rows))
            return cached_rows, True

    rows = fetcher.fetch(descriptor)
    if use_cache:
        cache.put(site_url, descriptor, rows)
    return rows, False


def resolve_sort(descriptor: QueryDescriptor, sort: Any = None) -> SortSpec:
    """Caller sort spec, or the descriptor's order-bys when none is given.

    Sort columns must be among the descriptor's metrics or dimensions.
    """
    if sort is None:
        return SortSpec.from_order_bys(descriptor.order_bys)
    spec = parse_sort_spec(sort)
    unknown = [lvl.column for lvl in spec.levels if lvl.column not in descriptor.row_fields]
    if unknown:
        raise QueryValidationError([
            f"Sort column '{column}' is not one of the selected metrics or dimensions"
            for column in unknown
        ])
    return spec


def _audit(
    request: QueryRequest,
    descriptor: QueryDescriptor | None,
    sort_spec: SortSpec | None,
    filters: FilterState | None,
    fetched: int,
    shaped: int,
    errors: list[str],
    latency_ms: int,
    settings: Settings,
) -> None:
    if not settings.query_log_enabled:
        return
    try:
        log_query(
            mode=request.mode,
            source=request.source,
            preset=request.preset if request.mode == "preset" else None,
            descriptor=descriptor.model_dump(mode="json") if descriptor else None,
            sort_spec=sort_spec.describe() if sort_spec else "",
            filters=filters.describe() if filters else [],
            fetched_rows=fetched,
            result_rows=shaped,
            errors=errors,
            latency_ms=latency_ms,
        )
    except Exception:
        logger.warning("Audit log write failed -- continuing")


def run_query(
    request: QueryRequest,
    *,
    sort: Any = None,
    string_filters: list[StringFilter] | None = None,
    numeric_filters: list[NumericFilter] | None = None,
    fetcher: RowFetcher | None = None,
    use_cache: bool = True,
    catalog: Catalog | None = None,
    settings: Settings | None = None,
    today: datetime.date | None = None,
) -> QueryResult:
    """End-to-end: request -> shaped rows.

    Parameters
    ----------
    request : QueryRequest
        Preset or ad-hoc request with its date-range shorthand.
    sort : optional
        Anything `parse_sort_spec` accepts. None means "use the descriptor's order-bys".
    string_filters, numeric_filters : optional
        Client-side filters, replayed in order into a fresh FilterState.
    fetcher : optional
        Row provider; defaults to the configured fetcher for the descriptor's source.

    Raises
    ------
    QueryValidationError
        The request (or sort spec) is invalid; nothing was fetched.
    ProviderError
        The provider rejected or failed the query.
    """
    settings = settings or get_settings()
    descriptor: QueryDescriptor | None = None
    sort_spec: SortSpec | None = None
    filters: FilterState | None = None
    fetched: list[dict[str, Any]] = []

    with timer() as elapsed:
        try:
            descriptor = normalize(request, catalog=catalog, settings=settings, today=today)
            sort_spec = resolve_sort(descriptor, sort)
            fetcher = fetcher or get_fetcher(descriptor.source, settings)
            fetched, cached = fetch_rows(descriptor, fetcher, use_cache=use_cache)
            sorted_rows = sort_rows(fetched, sort_spec)
            filters, warnings = build_filter_state(
                sorted_rows,
                string_filters,
                numeric_filters,
                sample_size=settings.numeric_filter_sample_size,
            )
            rows = filters.apply(sorted_rows)
        except QueryValidationError as exc:
            _audit(request, descriptor, sort_spec, filters, 0, 0, exc.errors, 0, settings)
            raise
        except ProviderError as exc:
            logger.error("Query failed: %s", exc)
            _audit(request, descriptor, sort_spec, filters, 0, 0, [str(exc)], 0, settings)
            raise

    logger.info("Query done | fetched=%d | shaped=%d | cached=%s | %d ms",
                len(fetched), len(rows), cached, elapsed["elapsed_ms"])
    _audit(request, descriptor, sort_spec, filters, len(fetched), len(rows), [],
           elapsed["elapsed_ms"], settings)

    return QueryResult(
        descriptor=descriptor,
        fetched_rows=fetched,
        rows=rows,
        sort_spec=sort_spec,
        filters=filters,
        warnings=warnings,
        latency_ms=elapsed["elapsed_ms"],
        cached=cached,
        rows_per_page=settings.rows_per_page,
    )
