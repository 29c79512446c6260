"""
Normalizer -- turns a QueryRequest (preset reference or ad-hoc selection)
into a canonical QueryDescriptor.

Checks performed (all of them, so callers can report every problem at once):
  1. Source is a known catalog source
  2. Preset mode: preset id given, preset exists, preset serves the source
  3. Ad-hoc mode: at least one metric and one dimension, all known to the source
  4. Order-by fields are among the selected metrics / dimensions
  5. Requested limit is a positive integer
  6. Provider filters target known dimensions with supported operators
  7. Date-range shorthand resolves (custom bounds are valid YYYY-MM-DD, start <= end)
"""
from __future__ import annotations

import datetime

from src.core.config import Settings, get_settings
from src.core.errors import QueryValidationError
from src.core.logging import get_logger
from src.query.catalog import Catalog, SourceCatalog, load_catalog
from src.query.dates import resolve_with_errors
from src.query.descriptor import (
    PROVIDER_FILTER_OPERATORS,
    DataSource,
    OrderBy,
    ProviderFilter,
    QueryDescriptor,
    QueryRequest,
)

logger = get_logger(__name__)


def _dedupe(names: list[str]) -> tuple[str, ...]:
    """Drop repeated names, keeping the first occurrence's position."""
    return tuple(dict.fromkeys(n for n in names if n))


def _check_names(
    names: tuple[str, ...], allowed: list[str], kind: str, errors: list[str]
) -> None:
    for name in names:
        if name not in allowed:
            errors.append(f"Unknown {kind} '{name}'. Allowed: {', '.join(allowed)}")


def _check_order_bys(
    order_bys: list[OrderBy],
    metrics: tuple[str, ...],
    dimensions: tuple[str, ...],
    errors: list[str],
) -> None:
    selected = set(metrics) | set(dimensions)
    for order_by in order_bys:
        if order_by.field not in selected:
            errors.append(
                f"Order-by field '{order_by.field}' is not one of the selected "
                f"metrics or dimensions"
            )


def _check_filters(
    filters: list[ProviderFilter], source: SourceCatalog | None, errors: list[str]
) -> None:
    for f in filters:
        if source is not None and f.dimension not in source.dimension_fields():
            errors.append(f"Filter dimension '{f.dimension}' is not a recognized dimension")
        if f.operator not in PROVIDER_FILTER_OPERATORS:
            errors.append(
                f"Unsupported filter operator '{f.operator}'. "
                f"Allowed: {', '.join(PROVIDER_FILTER_OPERATORS)}"
            )
        if not f.expression.strip():
            errors.append(f"Filter on '{f.dimension}' has an empty expression")


def _build(
    request: QueryRequest,
    catalog: Catalog,
    settings: Settings,
    today: datetime.date | None,
) -> tuple[QueryDescriptor | None, list[str]]:
    errors: list[str] = []

    source = catalog.source(request.source)
    if source is None:
        errors.append(
            f"Unknown source '{request.source}'. "
            f"Allowed: {', '.join(catalog.get_source_names())}"
        )

    metrics: tuple[str, ...] = ()
    dimensions: tuple[str, ...] = ()
    order_bys: list[OrderBy] = []
    filters: list[ProviderFilter] = []
    limit: int | None = None

    if request.mode == "preset":
        if not request.preset:
            errors.append("Preset ID is required in preset mode")
        else:
            preset = catalog.preset(request.preset)
            if preset is None:
                errors.append(f"Preset not found: '{request.preset}'")
            else:
                if source is not None and not preset.available_for(source.name):
                    errors.append(
                        f"Preset '{preset.id}' is not available for source '{source.name}'"
                    )
                metrics = _dedupe(preset.metrics)
                dimensions = _dedupe(preset.dimensions)
                order_bys = list(preset.order_bys)
                filters = list(preset.filters)
                limit = preset.limit
    else:
        metrics = _dedupe(request.metrics)
        dimensions = _dedupe(request.dimensions)
        if not metrics:
            errors.append("At least one metric is required")
        if not dimensions:
            errors.append("At least one dimension is required")
        if source is not None:
            _check_names(metrics, source.metric_fields(), "metric", errors)
            _check_names(dimensions, source.dimension_fields(), "dimension", errors)
        order_bys = list(request.order_bys)
        _check_order_bys(order_bys, metrics, dimensions, errors)
        filters = list(request.filters)
        if request.limit is not None and request.limit <= 0:
            errors.append(f"Limit must be a positive integer, got {request.limit}")
        limit = request.limit

    _check_filters(filters, source, errors)

    date_range, date_errors = resolve_with_errors(
        request.date_range_type, request.custom_start, request.custom_end, today
    )
    errors.extend(date_errors)

    if errors:
        return None, errors

    descriptor = QueryDescriptor(
        source=DataSource(source.name),
        date_range=date_range,
        metrics=metrics,
        dimensions=dimensions,
        order_bys=tuple(order_bys),
        limit=min(limit or settings.default_limit, settings.max_rows),
        filters=tuple(filters),
    )
    return descriptor, errors


# ── Public API ───────────────────────────────────────────

def validate_request(
    request: QueryRequest,
    catalog: Catalog | None = None,
    settings: Settings | None = None,
    today: datetime.date | None = None,
) -> list[str]:
    """Return a list of validation error messages (empty list = request is valid)."""
    _, errors = _build(request, catalog or load_catalog(), settings or get_settings(), today)
    return errors


def normalize(
    request: QueryRequest,
    catalog: Catalog | None = None,
    settings: Settings | None = None,
    today: datetime.date | None = None,
) -> QueryDescriptor:
    """Build the canonical QueryDescriptor for *request*.

    Raises
    ------
    QueryValidationError
        With every validation problem found; no partial descriptor is produced.
    """
    descriptor, errors = _build(
        request, catalog or load_catalog(), settings or get_settings(), today
    )
    if errors:
        logger.info("Normalizer rejected request | mode=%s | errors=%s", request.mode, errors)
        raise QueryValidationError(errors)

    logger.info("Normalizer[%s] -> %s", request.mode, descriptor.model_dump_json())
    return descriptor
