"""
Unit tests -- date-range shorthand resolution.
"""
import datetime

import pytest

from src.core.errors import QueryValidationError
from src.query.dates import DATE_RANGE_TYPES, resolve_date_range, resolve_with_errors

TODAY = datetime.date(2024, 3, 15)


@pytest.mark.parametrize("kind,days", [("last7", 7), ("last28", 28), ("last90", 90)])
def test_relative_ranges_count_back_from_today(kind, days):
    rng = resolve_date_range(kind, today=TODAY)
    assert rng.end == TODAY
    assert rng.start == TODAY - datetime.timedelta(days=days)


def test_last7_crosses_month_boundary():
    rng = resolve_date_range("last7", today=datetime.date(2024, 3, 3))
    assert rng.start == datetime.date(2024, 2, 25)


def test_custom_range():
    rng = resolve_date_range("custom", "2024-01-01", "2024-01-31", today=TODAY)
    assert rng.start == datetime.date(2024, 1, 1)
    assert rng.end == datetime.date(2024, 1, 31)


def test_custom_single_day():
    rng = resolve_date_range("custom", "2024-02-29", "2024-02-29", today=TODAY)
    assert rng.start == rng.end


def test_custom_start_after_end_rejected():
    with pytest.raises(QueryValidationError) as exc_info:
        resolve_date_range("custom", "2024-02-01", "2024-01-01", today=TODAY)
    assert "after end date" in exc_info.value.errors[0]


def test_custom_requires_both_bounds():
    _, errors = resolve_with_errors("custom", None, None, today=TODAY)
    assert len(errors) == 2
    assert any("Start date is required" in e for e in errors)
    assert any("End date is required" in e for e in errors)


def test_custom_bad_format():
    _, errors = resolve_with_errors("custom", "01/02/2024", "2024-01-31", today=TODAY)
    assert errors == ["Invalid start date '01/02/2024': expected YYYY-MM-DD"]


def test_custom_not_a_calendar_date():
    _, errors = resolve_with_errors("custom", "2024-01-01", "2023-02-30", today=TODAY)
    assert errors == ["Invalid end date '2023-02-30': not a calendar date"]


def test_unknown_kind():
    rng, errors = resolve_with_errors("yesterday", today=TODAY)
    assert rng is None
    assert "Unknown date range type" in errors[0]
    assert "last28" in errors[0]


def test_date_range_types_listed():
    assert DATE_RANGE_TYPES == ("last7", "last28", "last90", "custom")
