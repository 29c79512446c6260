"""
Integration tests -- live Search Console queries.

Requires GSC_SITE_URL and a stored authorized-user token file; skipped otherwise.
"""
from __future__ import annotations

from pathlib import Path

import pytest

from src.core.config import Settings

_settings = Settings()
GSC_CONFIGURED = bool(_settings.gsc_site_url) and Path(_settings.gsc_token_file).exists()

pytestmark = pytest.mark.skipif(not GSC_CONFIGURED, reason="Search Console not configured")

from src.insights.service import run_query
from src.query.descriptor import QueryRequest
from src.sources.searchconsole import SearchConsoleFetcher


def test_list_sites_includes_configured_site():
    fetcher = SearchConsoleFetcher(_settings.gsc_site_url, settings=_settings)
    urls = [s["siteUrl"] for s in fetcher.list_sites()]
    assert _settings.gsc_site_url in urls


def test_top_queries_preset():
    result = run_query(
        QueryRequest(mode="preset", preset="top-queries", date_range_type="last28"),
        use_cache=False,
    )
    assert result.total_fetched <= 50
    clicks = [r.get("clicks", 0) for r in result.rows]
    assert clicks == sorted(clicks, reverse=True)


def test_adhoc_query_respects_limit():
    result = run_query(
        QueryRequest(mode="adhoc", metrics=["clicks", "impressions"], dimensions=["page"], limit=5),
        sort="impressions:desc",
        use_cache=False,
    )
    assert result.total_fetched <= 5
    for row in result.rows:
        assert set(row) <= {"page", "clicks", "impressions"}
