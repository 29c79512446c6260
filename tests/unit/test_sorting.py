"""
Unit tests -- client-side multi-column sort.
"""
import pytest

from src.core.errors import QueryValidationError
from src.query.descriptor import OrderBy
from src.shaping.sorting import (
    NO_SORT,
    SortDirection,
    SortLevel,
    SortSpec,
    compare_values,
    parse_sort_spec,
    sort_rows,
)


def _spec(*levels) -> SortSpec:
    return SortSpec(levels=tuple(SortLevel(column=c, direction=d) for c, d in levels))


# ── Comparison ───────────────────────────────────────────

def test_numbers_compare_numerically():
    assert compare_values(9, 10) == -1
    assert compare_values(10.5, 10) == 1
    assert compare_values(3, 3.0) == 0


def test_mixed_types_compare_as_strings():
    # "9" > "10" lexicographically
    assert compare_values("9", 10) == 1


def test_missing_sorts_first():
    assert compare_values(None, 0) == -1
    assert compare_values("a", None) == 1
    assert compare_values(None, None) == 0


def test_bools_are_not_numbers():
    assert compare_values(True, 2) == 1  # "True" > "2"


# ── sort_rows ────────────────────────────────────────────

def test_single_level_desc(sample_rows):
    out = sort_rows(sample_rows, _spec(("clicks", "desc")))
    assert [r["clicks"] for r in out] == [120, 95, 95, 40, 3]


def test_secondary_level_breaks_ties(sample_rows):
    out = sort_rows(sample_rows, _spec(("clicks", "desc"), ("impressions", "asc")))
    assert [r["query"] for r in out[:3]] == ["buy shoes", "sandals", "Running Shoes"]


def test_secondary_level_only_applies_to_ties():
    rows = [{"a": 1, "b": 9}, {"a": 2, "b": 1}, {"a": 1, "b": 3}]
    out = sort_rows(rows, _spec(("a", "asc"), ("b", "desc")))
    assert out == [{"a": 1, "b": 9}, {"a": 1, "b": 3}, {"a": 2, "b": 1}]


def test_full_ties_keep_input_order():
    rows = [{"k": 1, "id": i} for i in range(6)]
    out = sort_rows(rows, _spec(("k", "desc")))
    assert [r["id"] for r in out] == list(range(6))


def test_text_sort_is_case_sensitive(sample_rows):
    out = sort_rows(sample_rows, _spec(("query", "asc")))
    assert out[0]["query"] == "Running Shoes"


def test_missing_field_sorts_first_ascending():
    rows = [{"ctr": 0.2}, {}, {"ctr": 0.1}]
    out = sort_rows(rows, _spec(("ctr", "asc")))
    assert out == [{}, {"ctr": 0.1}, {"ctr": 0.2}]


def test_missing_field_sorts_last_descending():
    rows = [{"ctr": 0.2}, {}, {"ctr": 0.1}]
    out = sort_rows(rows, _spec(("ctr", "desc")))
    assert out[-1] == {}


def test_no_sort_keeps_order(sample_rows):
    assert sort_rows(sample_rows, NO_SORT) == sample_rows
    assert sort_rows(sample_rows, None) == sample_rows


def test_sort_returns_new_list(sample_rows):
    before = [dict(r) for r in sample_rows]
    out = sort_rows(sample_rows, _spec(("clicks", "asc")))
    assert out is not sample_rows
    assert sample_rows == before


def test_sort_is_deterministic(sample_rows):
    spec = _spec(("clicks", "desc"), ("query", "asc"))
    assert sort_rows(sample_rows, spec) == sort_rows(list(reversed(sample_rows)), spec)


# ── SortSpec / parsing ───────────────────────────────────

def test_duplicate_columns_rejected_by_model():
    with pytest.raises(ValueError):
        _spec(("clicks", "asc"), ("clicks", "desc"))


def test_parse_comma_string():
    spec = parse_sort_spec("clicks:desc, query:asc")
    assert spec.levels == (
        SortLevel(column="clicks", direction=SortDirection.DESC),
        SortLevel(column="query", direction=SortDirection.ASC),
    )


def test_parse_text_forms():
    spec = parse_sort_spec(["-position", "ctr desc", "page"])
    assert [(lvl.column, lvl.direction.value) for lvl in spec.levels] == [
        ("position", "desc"), ("ctr", "desc"), ("page", "asc"),
    ]


def test_parse_dicts_and_placeholders():
    spec = parse_sort_spec({"columns": [
        {"column": "clicks", "direction": "DESC"},
        "separator1",
        {"column": "", "direction": "asc"},
        "separator2",
        {"column": "query"},
    ]})
    assert spec.describe() == "clicks desc, query asc"


def test_parse_none_entry_means_no_sort():
    assert parse_sort_spec(["clicks:desc", "none"]) is NO_SORT
    assert parse_sort_spec("none").is_empty


def test_parse_none_input():
    assert parse_sort_spec(None) is NO_SORT


def test_parse_duplicate_columns():
    with pytest.raises(QueryValidationError) as exc_info:
        parse_sort_spec("clicks:desc,clicks:asc")
    assert "appears more than once" in exc_info.value.errors[0]


def test_parse_bad_direction():
    with pytest.raises(QueryValidationError, match="Unknown sort direction 'sideways'"):
        parse_sort_spec([{"column": "clicks", "direction": "sideways"}])


def test_from_order_bys():
    spec = SortSpec.from_order_bys([OrderBy(field="date"), OrderBy(field="clicks", descending=True)])
    assert spec.describe() == "date asc, clicks desc"


def test_describe_empty():
    assert NO_SORT.describe() == "none"


def test_parse_single_dict():
    assert parse_sort_spec({"column": "clicks", "direction": "desc"}).describe() == "clicks desc"


def test_parse_non_string_column():
    with pytest.raises(QueryValidationError) as exc_info:
        parse_sort_spec([{"column": 5, "direction": "desc"}])
    assert exc_info.value.errors[0].startswith("Invalid sort entry")


@pytest.mark.parametrize("raw", [[42], [None], 7])
def test_parse_unsupported_entries(raw):
    with pytest.raises(QueryValidationError):
        parse_sort_spec(raw)


@pytest.mark.parametrize("levels", [
    (("clicks", "desc"),),
    (("clicks", "desc"), ("impressions", "asc")),
    (("query", "asc"),),
    (("ctr", "asc"), ("query", "desc")),
    (("missing", "desc"), ("clicks", "asc")),
])
def test_sort_is_idempotent(sample_rows, levels):
    spec = _spec(*levels)
    once = sort_rows(sample_rows, spec)
    assert sort_rows(once, spec) == once
