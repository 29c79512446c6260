"""
Date-range shorthand resolution.

`last7` / `last28` / `last90` are plain day arithmetic back from *today*
(not calendar months); `custom` takes explicit YYYY-MM-DD bounds.
"""
from __future__ import annotations

import datetime
import re

from src.core.errors import QueryValidationError
from src.query.descriptor import DateRange

RELATIVE_RANGES: dict[str, int] = {
    "last7": 7,
    "last28": 28,
    "last90": 90,
}
CUSTOM_RANGE = "custom"
DATE_RANGE_TYPES = (*RELATIVE_RANGES, CUSTOM_RANGE)

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def format_date(value: datetime.date) -> str:
    return value.isoformat()


def _parse_bound(value: str | None, label: str, errors: list[str]) -> datetime.date | None:
    if not value:
        errors.append(f"{label} date is required for a custom date range")
        return None
    if not _ISO_DATE_RE.match(value):
        errors.append(f"Invalid {label.lower()} date '{value}': expected YYYY-MM-DD")
        return None
    try:
        return datetime.date.fromisoformat(value)
    except ValueError:
        errors.append(f"Invalid {label.lower()} date '{value}': not a calendar date")
        return None


def resolve_with_errors(
    kind: str,
    custom_start: str | None = None,
    custom_end: str | None = None,
    today: datetime.date | None = None,
) -> tuple[DateRange | None, list[str]]:
    """Resolve *kind* into a DateRange, collecting every problem found."""
    errors: list[str] = []
    today = today or datetime.date.today()

    if kind in RELATIVE_RANGES:
        start = today - datetime.timedelta(days=RELATIVE_RANGES[kind])
        return DateRange(start=start, end=today), errors

    if kind != CUSTOM_RANGE:
        errors.append(
            f"Unknown date range type: '{kind}'. Allowed: {', '.join(DATE_RANGE_TYPES)}"
        )
        return None, errors

    start = _parse_bound(custom_start, "Start", errors)
    end = _parse_bound(custom_end, "End", errors)
    if start and end and start > end:
        errors.append(f"Start date {start.isoformat()} is after end date {end.isoformat()}")
    if errors:
        return None, errors
    return DateRange(start=start, end=end), errors


def resolve_date_range(
    kind: str,
    custom_start: str | None = None,
    custom_end: str | None = None,
    today: datetime.date | None = None,
) -> DateRange:
    """Resolve a shorthand into a DateRange or raise QueryValidationError."""
    date_range, errors = resolve_with_errors(kind, custom_start, custom_end, today)
    if errors:
        raise QueryValidationError(errors)
    return date_range
