"""
GET /presets, GET /schema, GET /history -- metadata endpoints.
"""
from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from src.core.config import get_settings
from src.core.logging import get_logger
from src.db.query_log import recent_queries
from src.query.catalog import load_catalog
from src.query.dates import DATE_RANGE_TYPES
from src.query.descriptor import DataSource, PROVIDER_FILTER_OPERATORS
from src.shaping.filters import NumericOperator, StringOperator

logger = get_logger(__name__)
router = APIRouter()



class OrderByItem(BaseModel):
    field: str
    descending: bool


class PresetItem(BaseModel):
    id: str
    label: str
    description: str
    source: str
    metrics: list[str]
    dimensions: list[str]
    order_bys: list[OrderByItem]
    limit: int | None


class SchemaResponse(BaseModel):
    source: str
    label: str
    metrics: list[str]
    dimensions: list[str]
    date_range_types: list[str]
    provider_filter_operators: list[str]
    string_filter_operators: list[str]
    numeric_filter_operators: list[str]
    default_limit: int
    max_rows: int
    rows_per_page: int



@router.get("/presets", response_model=list[PresetItem])
def list_presets(source: str = DataSource.SEARCHCONSOLE.value) -> list[PresetItem]:
    """Return the presets usable with *source*, in catalog order."""
    catalog = load_catalog()
    return [
        PresetItem(
            id=p.id,
            label=p.label,
            description=p.description,
            source=p.source,
            metrics=p.metrics,
            dimensions=p.dimensions,
            order_bys=[OrderByItem(field=o.field, descending=o.descending) for o in p.order_bys],
            limit=p.limit,
        )
        for p in catalog.presets_for_source(source)
    ]


@router.get("/schema", response_model=SchemaResponse)
def source_schema(source: str = DataSource.SEARCHCONSOLE.value) -> SchemaResponse:
    """Return the queryable fields and operators for *source*."""
    catalog = load_catalog()
    src = catalog.source(source)
    if src is None:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown source '{source}'. Allowed: {', '.join(catalog.get_source_names())}",
        )
    settings = get_settings()
    return SchemaResponse(
        source=src.name,
        label=src.label,
        metrics=src.metric_fields(),
        dimensions=src.dimension_fields(),
        date_range_types=list(DATE_RANGE_TYPES),
        provider_filter_operators=list(PROVIDER_FILTER_OPERATORS),
        string_filter_operators=[op.value for op in StringOperator],
        numeric_filter_operators=[op.value for op in NumericOperator],
        default_limit=settings.default_limit,
        max_rows=settings.max_rows,
        rows_per_page=settings.rows_per_page,
    )


@router.get("/history")
def query_history(limit: int = Query(50, ge=1, le=500)) -> dict:
    """Return the newest query log entries, newest first."""
    try:
        entries = recent_queries(limit)
    except Exception as exc:
        logger.warning("Query history unavailable: %s", exc)
        raise HTTPException(status_code=503, detail="Query history unavailable")
    return {"entries": entries}
