"""
Centralised application settings loaded from environment / .env file.
"""
from __future__ import annotations

from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load .env from project root (two levels up from this file)
_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(_ENV_PATH)

_BUNDLED_CATALOG = Path(__file__).resolve().parents[2] / "catalog" / "sources.yml"


class Settings(BaseSettings):
    # ── Search Console ───────────────────────────────────
    gsc_site_url: str = ""
    gsc_token_file: str = ".out/gsc_token.json"
    gsc_search_type: str = "web"
    gsc_data_state: str = "final"
    gsc_page_size: int = 25_000

    # ── BigQuery (GA4 export) ────────────────────────────
    bq_project_id: str = ""
    bq_dataset: str = ""
    bq_events_table: str = "events_*"
    bq_location: str = "US"

    # ── Query limits ─────────────────────────────────────
    max_rows: int = 100_000
    default_limit: int = 1000
    catalog_path: str = ""

    # ── Result shaping ───────────────────────────────────
    rows_per_page: int = 50
    numeric_filter_sample_size: int = 10
    display_precision: int = 3

    # ── Output ───────────────────────────────────────────
    output_dir: str = "./.out"
    default_output_format: str = "table"  # table | json | csv

    # ── Audit log / cache ────────────────────────────────
    query_log_enabled: bool = True
    query_log_url: str = "sqlite:///./.out/gsc_insights.db"
    cache_ttl_seconds: float = 300

    # ── App ──────────────────────────────────────────────
    api_port: int = 8000
    api_base_url: str = "http://localhost:8000"
    streamlit_port: int = 8501
    log_level: str = "INFO"

    @property
    def resolved_catalog_path(self) -> Path:
        return Path(self.catalog_path) if self.catalog_path else _BUNDLED_CATALOG

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
