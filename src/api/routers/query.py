"""POST /query/adhoc, POST /query/preset -- run, sort, filter and page a query."""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field
from fastapi import APIRouter, Depends, HTTPException, Response

from src.core.errors import ProviderError, QueryValidationError
from src.core.logging import get_logger
from src.insights.cache import get_cache
from src.insights.export import rows_to_csv
from src.insights.service import QueryResult, RowFetcher, run_query
from src.query.catalog import load_catalog
from src.query.descriptor import DataSource, OrderBy, ProviderFilter, QueryRequest
from src.shaping.filters import NumericFilter, StringFilter

logger = get_logger(__name__)
router = APIRouter()



class QueryOptions(BaseModel):
    sort: list[dict[str, Any] | str] | str | None = Field(
        None,
        description="Ordered sort levels, e.g. [{'column': 'clicks', 'direction': 'desc'}]; "
                    "'none' disables sorting, omitted uses the query's order-bys",
    )
    string_filters: list[StringFilter] = Field(default_factory=list)
    numeric_filters: list[NumericFilter] = Field(default_factory=list)
    page: int | None = Field(None, ge=0, description="0-based page; omitted returns all rows")
    output_format: Literal["json", "csv"] = "json"
    use_cache: bool = True


class AdhocQueryBody(QueryOptions):
    source: str = DataSource.SEARCHCONSOLE.value
    metrics: list[str] | None = Field(None, description="Omitted selects every metric of the source")
    dimensions: list[str] | None = Field(None, description="Omitted selects the source's first dimension")
    order_bys: list[OrderBy] = Field(default_factory=list)
    limit: int | None = None
    filters: list[ProviderFilter] = Field(default_factory=list)
    date_range_type: str = "last7"
    custom_start: str | None = None
    custom_end: str | None = None


class PresetQueryBody(QueryOptions):
    source: str | None = Field(None, description="Defaults to the preset's own source")
    preset: str = Field(..., min_length=1, description="Preset id, see GET /presets")
    date_range_type: str = "last7"
    custom_start: str | None = None
    custom_end: str | None = None


class PageInfo(BaseModel):
    page_index: int
    total_pages: int
    rows_per_page: int
    first_row: int
    last_row: int


class QueryResponse(BaseModel):
    success: bool
    descriptor: dict
    rows: list[dict]
    total_fetched: int
    total_rows: int
    sort: str
    filters: list[str]
    warnings: list[str]
    page: PageInfo | None
    latency_ms: int
    cached: bool


class CacheStatsResponse(BaseModel):
    size: int
    max_size: int
    ttl_seconds: float
    hits: int
    misses: int
    hit_rate: float



def get_row_fetcher() -> RowFetcher | None:
    """Fetcher dependency; None selects the configured fetcher for the request's source."""
    return None


def _source_defaults(source: str) -> tuple[list[str], list[str]]:
    src = load_catalog().source(source)
    if src is None:
        return [], []
    return src.metric_fields(), src.dimension_fields()[:1]


def _preset_source(preset_id: str) -> str:
    preset = load_catalog().preset(preset_id)
    if preset is None or preset.source == "any":
        return DataSource.SEARCHCONSOLE.value
    return preset.source


def _execute(request: QueryRequest, options: QueryOptions, fetcher: RowFetcher | None):
    try:
        result = run_query(
            request,
            sort=options.sort,
            string_filters=options.string_filters,
            numeric_filters=options.numeric_filters,
            fetcher=fetcher,
            use_cache=options.use_cache,
        )
    except QueryValidationError as exc:
        raise HTTPException(status_code=400, detail={"errors": exc.errors})
    except ProviderError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    except Exception as exc:
        logger.exception("Query pipeline failed")
        raise HTTPException(status_code=500, detail=str(exc))

    if options.output_format == "csv":
        filename = "gsc-preset-data.csv" if request.mode == "preset" else "gsc-data.csv"
        return Response(
            content=rows_to_csv(result.rows),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )
    return _to_response(result, options.page)


def _to_response(result: QueryResult, page_index: int | None) -> QueryResponse:
    rows = result.rows
    page_info = None
    if page_index is not None:
        try:
            page = result.page(page_index)
        except IndexError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        rows = page.rows
        page_info = PageInfo(
            page_index=page.page_index,
            total_pages=page.total_pages,
            rows_per_page=page.rows_per_page,
            first_row=page.first_row_number,
            last_row=page.last_row_number,
        )

    return QueryResponse(
        success=True,
        descriptor=result.descriptor.model_dump(mode="json"),
        rows=rows,
        total_fetched=result.total_fetched,
        total_rows=result.total_rows,
        sort=result.sort_spec.describe(),
        filters=result.filters.describe(),
        warnings=result.warnings,
        page=page_info,
        latency_ms=result.latency_ms,
        cached=result.cached,
    )


@router.post("/adhoc", response_model=QueryResponse)
def adhoc_endpoint(body: AdhocQueryBody, fetcher: RowFetcher | None = Depends(get_row_fetcher)):
    """Ad-hoc metrics/dimensions -> normalize -> fetch -> sort -> filter -> page."""
    default_metrics, default_dimensions = _source_defaults(body.source)
    request = QueryRequest(
        mode="adhoc",
        source=body.source,
        metrics=default_metrics if body.metrics is None else body.metrics,
        dimensions=default_dimensions if body.dimensions is None else body.dimensions,
        order_bys=body.order_bys,
        limit=body.limit,
        filters=body.filters,
        date_range_type=body.date_range_type,
        custom_start=body.custom_start,
        custom_end=body.custom_end,
    )
    return _execute(request, body, fetcher)


@router.post("/preset", response_model=QueryResponse)
def preset_endpoint(body: PresetQueryBody, fetcher: RowFetcher | None = Depends(get_row_fetcher)):
    """Preset id -> normalize -> fetch -> sort -> filter -> page."""
    request = QueryRequest(
        mode="preset",
        source=body.source or _preset_source(body.preset),
        preset=body.preset,
        date_range_type=body.date_range_type,
        custom_start=body.custom_start,
        custom_end=body.custom_end,
    )
    return _execute(request, body, fetcher)


@router.get("/cache/stats", response_model=CacheStatsResponse)
def cache_stats_endpoint():
    """Return fetched-row cache statistics."""
    return CacheStatsResponse(**get_cache().stats())


@router.post("/cache/clear")
def cache_clear_endpoint():
    """Flush the fetched-row cache."""
    removed = get_cache().invalidate()
    return {"cleared": removed}
