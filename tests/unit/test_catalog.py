"""
Unit tests -- source catalog and preset registry YAML loading.
"""
import pytest

from src.query.catalog import Catalog, load_catalog, load_catalog_file, parse_catalog


@pytest.fixture(scope="module")
def catalog() -> Catalog:
    return load_catalog()


def test_catalog_loads(catalog):
    assert catalog.version == 1
    assert "searchconsole" in catalog.get_source_names()


def test_source_fields(catalog):
    src = catalog.source("searchconsole")
    assert src.metric_fields() == ["clicks", "impressions", "ctr", "position"]
    assert "searchAppearance" in src.dimension_fields()
    assert "date" in src.dimension_fields()


def test_unknown_source_is_none(catalog):
    assert catalog.source("analytics") is None


def test_bundled_presets(catalog):
    assert catalog.get_preset_ids() == [
        "top-queries",
        "top-pages-gsc",
        "queries-by-country",
        "device-breakdown",
        "search-appearance",
        "daily-trend",
        "bq-events-sample",
        "bq-pageviews",
    ]


def test_preset_lookup(catalog):
    preset = catalog.preset("top-queries")
    assert preset.dimensions == ["query"]
    assert preset.limit == 50
    assert preset.order_bys[0].field == "clicks"
    assert preset.order_bys[0].descending is True


def test_preset_lookup_missing(catalog):
    assert catalog.preset("no-such-preset") is None


def test_daily_trend_sorted_ascending(catalog):
    preset = catalog.preset("daily-trend")
    assert preset.order_bys[0].field == "date"
    assert preset.order_bys[0].descending is False


def test_presets_for_source(catalog):
    ids = [p.id for p in catalog.presets_for_source("searchconsole")]
    assert "device-breakdown" in ids
    assert "bq-pageviews" not in ids
    assert catalog.presets_for_source("analytics") == []


def test_bigquery_source_and_presets(catalog):
    src = catalog.source("bigquery")
    assert src.metric_fields() == ["event_count", "user_count", "session_count"]
    assert "page_location" in src.dimension_fields()
    assert [p.id for p in catalog.presets_for_source("bigquery")] == ["bq-events-sample", "bq-pageviews"]


def test_pageviews_preset_filters_page_view_events(catalog):
    preset = catalog.preset("bq-pageviews")
    assert preset.filters[0].dimension == "event_name"
    assert preset.filters[0].expression == "page_view"
    assert preset.order_bys[0].descending is False


def test_any_source_preset_is_shared():
    cat = parse_catalog({
        "sources": {"searchconsole": {"metrics": {"clicks": "clicks"}}},
        "presets": [
            {"id": "shared", "source": "any", "metrics": ["clicks"], "dimensions": ["page"]},
            {"id": "gsc-only", "source": "searchconsole", "metrics": ["clicks"], "dimensions": ["query"]},
        ],
    })
    assert [p.id for p in cat.presets_for_source("other")] == ["shared"]
    assert len(cat.presets_for_source("searchconsole")) == 2


def test_order_by_without_field_rejected():
    with pytest.raises(ValueError, match="names no field"):
        parse_catalog({"presets": [
            {"id": "x", "metrics": ["clicks"], "dimensions": ["query"], "order_bys": [{"desc": True}]},
        ]})


def test_preset_filters_parsed(tmp_path):
    path = tmp_path / "catalog.yml"
    path.write_text(
        "version: 2\n"
        "sources:\n"
        "  searchconsole:\n"
        "    dimensions: {page: page}\n"
        "presets:\n"
        "  - id: blog\n"
        "    metrics: [clicks]\n"
        "    dimensions: [page]\n"
        "    filters:\n"
        "      - {dimension: page, operator: contains, expression: /blog/}\n"
    )
    cat = load_catalog_file(path)
    assert cat.version == 2
    f = cat.preset("blog").filters[0]
    assert (f.dimension, f.operator, f.expression) == ("page", "contains", "/blog/")
