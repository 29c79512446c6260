"""
QueryRequest / QueryDescriptor -- the loose caller input and the canonical,
immutable query handed to the result fetcher.
"""
from __future__ import annotations

import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class DataSource(str, Enum):
    SEARCHCONSOLE = "searchconsole"
    BIGQUERY = "bigquery"


PROVIDER_FILTER_OPERATORS = (
    "equals",
    "notEquals",
    "contains",
    "notContains",
    "includingRegex",
    "excludingRegex",
)


class DateRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: datetime.date
    end: datetime.date

    @model_validator(mode="after")
    def _start_not_after_end(self) -> "DateRange":
        if self.start > self.end:
            raise ValueError("Start date must not be after end date")
        return self


class OrderBy(BaseModel):
    """Provider-side ordering hint."""

    model_config = ConfigDict(frozen=True)

    field: str
    descending: bool = False


class ProviderFilter(BaseModel):
    """A dimension filter forwarded to the provider (not the client-side FilterState)."""

    model_config = ConfigDict(frozen=True)

    dimension: str
    operator: str = "equals"
    expression: str


class QueryDescriptor(BaseModel):
    """Canonical query: built once by the normalizer, consumed by the fetcher."""

    model_config = ConfigDict(frozen=True)

    source: DataSource
    date_range: DateRange
    metrics: tuple[str, ...] = Field(..., min_length=1)
    dimensions: tuple[str, ...] = Field(..., min_length=1)
    order_bys: tuple[OrderBy, ...] = ()
    limit: int = Field(..., gt=0)
    filters: tuple[ProviderFilter, ...] = ()

    @property
    def row_fields(self) -> tuple[str, ...]:
        """Every field a result row may carry, dimensions first."""
        return self.dimensions + self.metrics


class QueryRequest(BaseModel):
    """Raw request from the CLI or HTTP layer, before normalization."""

    mode: Literal["preset", "adhoc"] = "adhoc"
    source: str = Field(DataSource.SEARCHCONSOLE.value, description="Data provider id")
    preset: str | None = Field(None, description="Preset id (preset mode)")
    metrics: list[str] = Field(default_factory=list)
    dimensions: list[str] = Field(default_factory=list)
    order_bys: list[OrderBy] = Field(default_factory=list)
    limit: int | None = Field(None, description="Requested row limit (ad-hoc mode)")
    filters: list[ProviderFilter] = Field(default_factory=list)
    date_range_type: str = Field("last7", description="last7 | last28 | last90 | custom")
    custom_start: str | None = Field(None, description="YYYY-MM-DD, custom range only")
    custom_end: str | None = Field(None, description="YYYY-MM-DD, custom range only")
