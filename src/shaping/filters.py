"""
Client-side row filters and the session-scoped FilterState.

Filters are cumulative and conjunctive: a row survives only if every stored
string filter and then every stored numeric filter passes, in insertion
order. The state is always re-applied to the *original* row set, never to
an already-filtered one.

A FilterState belongs to one viewing session or one HTTP request; it is
never shared between callers.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

from src.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SAMPLE_SIZE = 10

# First signed decimal token, optionally exponential: "-1.5", "20x" -> 20, "3e-2"
_NUMBER_RE = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")


class StringOperator(str, Enum):
    EXACT = "exact"
    CONTAINS = "contains"
    NOT_EXACT = "notExact"
    NOT_CONTAINS = "notContains"


class NumericOperator(str, Enum):
    GE = ">="
    LE = "<="
    GT = ">"
    LT = "<"
    EQ = "="


def stringify(value: Any) -> str:
    return "" if value is None else str(value)


def extract_leading_number(value: Any) -> float | None:
    """Return the first numeric token in ``str(value)``, or None if there is none."""
    match = _NUMBER_RE.search(stringify(value))
    if match is None:
        return None
    return float(match.group(0))


class StringFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    operator: StringOperator
    value: str

    def matches(self, row: dict[str, Any]) -> bool:
        actual = stringify(row.get(self.field)).lower()
        expected = self.value.lower()
        if self.operator is StringOperator.EXACT:
            return actual == expected
        if self.operator is StringOperator.CONTAINS:
            return expected in actual
        if self.operator is StringOperator.NOT_EXACT:
            return actual != expected
        return expected not in actual

    def describe(self) -> str:
        return f'{self.field} {self.operator.value} "{self.value}"'


class NumericFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    operator: NumericOperator
    value: float

    def matches(self, row: dict[str, Any]) -> bool:
        actual = extract_leading_number(row.get(self.field))
        if actual is None:
            return False
        if self.operator is NumericOperator.GE:
            return actual >= self.value
        if self.operator is NumericOperator.LE:
            return actual <= self.value
        if self.operator is NumericOperator.GT:
            return actual > self.value
        if self.operator is NumericOperator.LT:
            return actual < self.value
        return actual == self.value

    def describe(self) -> str:
        return f"{self.field} {self.operator.value} {self.value:g}"


# ── Single-filter helpers ────────────────────────────────

def apply_string_filter(
    rows: list[dict[str, Any]], field: str, operator: StringOperator | str, value: str
) -> list[dict[str, Any]]:
    f = StringFilter(field=field, operator=operator, value=value)
    return [row for row in rows if f.matches(row)]


def apply_numeric_filter(
    rows: list[dict[str, Any]], field: str, operator: NumericOperator | str, value: float
) -> list[dict[str, Any]]:
    f = NumericFilter(field=field, operator=operator, value=value)
    return [row for row in rows if f.matches(row)]


def has_numeric_values(rows: list[dict[str, Any]], field: str, sample_size: int) -> bool:
    """True if *field* parses as a number in at least one of the first *sample_size* rows."""
    return any(
        extract_leading_number(row.get(field)) is not None for row in rows[:sample_size]
    )


# ── Session state ────────────────────────────────────────

@dataclass
class FilterOutcome:
    """Result of adding one filter to a FilterState."""

    accepted: bool
    rows: list[dict[str, Any]]
    warning: str | None = None


@dataclass
class FilterState:
    string_filters: list[StringFilter] = field(default_factory=list)
    numeric_filters: list[NumericFilter] = field(default_factory=list)
    sample_size: int = DEFAULT_SAMPLE_SIZE

    @property
    def is_active(self) -> bool:
        return bool(self.string_filters or self.numeric_filters)

    def __len__(self) -> int:
        return len(self.string_filters) + len(self.numeric_filters)

    def describe(self) -> list[str]:
        return [f.describe() for f in (*self.string_filters, *self.numeric_filters)]

    def apply(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Fold every stored filter over the original *rows*."""
        result = list(rows)
        for f in self.string_filters:
            result = [row for row in result if f.matches(row)]
        for f in self.numeric_filters:
            result = [row for row in result if f.matches(row)]
        return result

    def add_string_filter(
        self,
        rows: list[dict[str, Any]],
        field: str,
        operator: StringOperator | str,
        value: str,
    ) -> FilterOutcome:
        self.string_filters.append(StringFilter(field=field, operator=operator, value=value))
        return self._outcome(rows)

    def add_numeric_filter(
        self,
        rows: list[dict[str, Any]],
        field: str,
        operator: NumericOperator | str,
        value: float,
    ) -> FilterOutcome:
        """Add a numeric filter unless *field* looks non-numeric in a sample of *rows*."""
        new_filter = NumericFilter(field=field, operator=operator, value=value)
        if not has_numeric_values(rows, field, self.sample_size):
            warning = (
                f"Field '{field}' has no numeric values in the first {self.sample_size} "
                f"rows; numeric filter rejected"
            )
            logger.warning(warning)
            return FilterOutcome(accepted=False, rows=self.apply(rows), warning=warning)
        self.numeric_filters.append(new_filter)
        return self._outcome(rows)

    def clear(self) -> None:
        self.string_filters.clear()
        self.numeric_filters.clear()

    def _outcome(self, rows: list[dict[str, Any]]) -> FilterOutcome:
        filtered = self.apply(rows)
        warning = None
        if rows and not filtered:
            # Kept anyway: the caller asked for it and can clear it
            warning = "No rows match the active filters"
            logger.warning("%s: %s", warning, "; ".join(self.describe()))
        return FilterOutcome(accepted=True, rows=filtered, warning=warning)


def apply_filters(rows: list[dict[str, Any]], state: FilterState | None) -> list[dict[str, Any]]:
    if state is None:
        return list(rows)
    return state.apply(rows)


def build_filter_state(
    rows: list[dict[str, Any]],
    string_filters: list[StringFilter] | None = None,
    numeric_filters: list[NumericFilter] | None = None,
    sample_size: int = DEFAULT_SAMPLE_SIZE,
) -> tuple[FilterState, list[str]]:
    """Replay plain-data filters into a fresh FilterState, collecting warnings."""
    state = FilterState(sample_size=sample_size)
    warnings: list[str] = []
    for f in string_filters or []:
        outcome = state.add_string_filter(rows, f.field, f.operator, f.value)
        if outcome.warning:
            warnings.append(outcome.warning)
    for f in numeric_filters or []:
        outcome = state.add_numeric_filter(rows, f.field, f.operator, f.value)
        if outcome.warning:
            warnings.append(outcome.warning)
    return state, list(dict.fromkeys(warnings))
