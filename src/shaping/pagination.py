"""
Pagination and display shaping.

`paginate` slices an already sorted + filtered row list into fixed-size
pages. `ViewSession` is the interactive state machine used by the terminal
viewer:

    Viewing(page) --advance--> Viewing(page + 1) | Done (after the last page)
    Viewing(page) --quit-----> Done
    Viewing(page) --filter---> Viewing(0), sort + filter re-run from the original rows

The session clears its FilterState on every terminal transition.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from src.shaping.filters import FilterOutcome, FilterState, NumericOperator, StringOperator
from src.shaping.sorting import NO_SORT, SortSpec, sort_rows

ROWS_PER_PAGE = 50
DISPLAY_PRECISION = 3


@dataclass(frozen=True)
class PageView:
    rows: list[dict[str, Any]]
    page_index: int
    total_pages: int
    rows_per_page: int
    total_rows: int

    @property
    def first_row_number(self) -> int:
        """1-based number of the first row on this page (0 when the page is empty)."""
        return self.page_index * self.rows_per_page + 1 if self.rows else 0

    @property
    def last_row_number(self) -> int:
        return self.page_index * self.rows_per_page + len(self.rows)

    @property
    def is_last(self) -> bool:
        return self.page_index >= self.total_pages - 1


def total_pages(row_count: int, rows_per_page: int = ROWS_PER_PAGE) -> int:
    if rows_per_page <= 0:
        raise ValueError("rows_per_page must be positive")
    return math.ceil(row_count / rows_per_page)


def paginate(
    rows: list[dict[str, Any]], page_index: int, rows_per_page: int = ROWS_PER_PAGE
) -> PageView:
    """Return page *page_index* (0-based) of *rows*.

    Raises
    ------
    IndexError
        If *page_index* is negative or past the last page. Page 0 of an
        empty row list is valid and empty.
    """
    pages = total_pages(len(rows), rows_per_page)
    if page_index < 0 or (page_index >= pages and not (page_index == 0 and pages == 0)):
        raise IndexError(f"Page {page_index} out of range (0..{max(pages - 1, 0)})")
    start = page_index * rows_per_page
    return PageView(
        rows=rows[start:start + rows_per_page],
        page_index=page_index,
        total_pages=pages,
        rows_per_page=rows_per_page,
        total_rows=len(rows),
    )


def format_display_value(value: Any, precision: int = DISPLAY_PRECISION) -> Any:
    """Round non-integer floats for display; everything else passes through."""
    if isinstance(value, float) and not value.is_integer():
        return round(value, precision)
    return value


def format_row_for_display(row: dict[str, Any], precision: int = DISPLAY_PRECISION) -> dict[str, Any]:
    """Return a display copy of *row*; the source row is left untouched for export."""
    return {key: format_display_value(value, precision) for key, value in row.items()}


# ── Interactive session ──────────────────────────────────

class ViewState(str, Enum):
    VIEWING = "viewing"
    DONE = "done"


@dataclass
class ViewSession:
    """One interactive pass over a fetched result set."""

    original_rows: list[dict[str, Any]]
    sort_spec: SortSpec = NO_SORT
    filters: FilterState = field(default_factory=FilterState)
    rows_per_page: int = ROWS_PER_PAGE
    page_index: int = 0
    state: ViewState = ViewState.VIEWING
    rows: list[dict[str, Any]] = field(default_factory=list, init=False)

    def __post_init__(self) -> None:
        self._rerun()

    @property
    def total_pages(self) -> int:
        return total_pages(len(self.rows), self.rows_per_page)

    @property
    def done(self) -> bool:
        return self.state is ViewState.DONE

    def current_page(self) -> PageView:
        return paginate(self.rows, self.page_index, self.rows_per_page)

    def advance(self) -> ViewState:
        if self.done:
            return self.state
        if self.page_index + 1 >= self.total_pages:
            self._finish()
        else:
            self.page_index += 1
        return self.state

    def quit(self) -> ViewState:
        self._finish()
        return self.state

    def add_string_filter(
        self, field_name: str, operator: StringOperator | str, value: str
    ) -> FilterOutcome:
        outcome = self.filters.add_string_filter(self._sorted(), field_name, operator, value)
        self._rerun()
        return outcome

    def add_numeric_filter(
        self, field_name: str, operator: NumericOperator | str, value: float
    ) -> FilterOutcome:
        outcome = self.filters.add_numeric_filter(self._sorted(), field_name, operator, value)
        self._rerun()
        return outcome

    def clear_filters(self) -> None:
        self.filters.clear()
        self._rerun()

    def _sorted(self) -> list[dict[str, Any]]:
        return sort_rows(self.original_rows, self.sort_spec)

    def _rerun(self) -> None:
        self.rows = self.filters.apply(self._sorted())
        self.page_index = 0

    def _finish(self) -> None:
        self.state = ViewState.DONE
        self.filters.clear()
