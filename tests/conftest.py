"""
Shared test setup.

The audit log is pointed at a throwaway SQLite file before any settings are
loaded, and the process-wide row cache is flushed between tests.
"""
import os
import tempfile

import pytest

_TMP_DIR = tempfile.mkdtemp(prefix="gsc-insights-tests-")
os.environ["QUERY_LOG_URL"] = f"sqlite:///{_TMP_DIR}/query_log.db"
os.environ["OUTPUT_DIR"] = os.path.join(_TMP_DIR, "out")


class FakeFetcher:
    """Row provider that records every descriptor it is asked for."""

    def __init__(self, rows=None, site_url="sc-domain:example.com", error=None):
        self.rows = rows or []
        self.site_url = site_url
        self.error = error
        self.calls = []

    def fetch(self, descriptor):
        self.calls.append(descriptor)
        if self.error is not None:
            raise self.error
        return [dict(r) for r in self.rows]


SAMPLE_ROWS = [
    {"query": "buy shoes", "clicks": 120, "impressions": 1500, "ctr": 0.08, "position": 3.2},
    {"query": "Running Shoes", "clicks": 95, "impressions": 2200, "ctr": 0.0431818, "position": 5.7},
    {"query": "shoe repair", "clicks": 40, "impressions": 300, "ctr": 0.1333333, "position": 1.9},
    {"query": "sandals", "clicks": 95, "impressions": 900, "ctr": 0.1055555, "position": 4.1},
    {"query": "boots", "clicks": 3, "impressions": 410, "ctr": 0.0073170, "position": 12.4},
]


@pytest.fixture
def sample_rows():
    return [dict(r) for r in SAMPLE_ROWS]


@pytest.fixture
def fake_fetcher(sample_rows):
    return FakeFetcher(rows=sample_rows)


@pytest.fixture(autouse=True)
def _fresh_row_cache():
    from src.insights.cache import get_cache

    get_cache().invalidate()
    yield
    get_cache().invalidate()


@pytest.fixture
def make_fetcher():
    return FakeFetcher
