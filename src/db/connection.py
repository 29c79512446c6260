"""SQLAlchemy engine for the query audit log.

Single shared engine, created lazily from `settings.query_log_url`
(SQLite by default; the database directory is created on first use).
"""
from __future__ import annotations

from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url

from src.core.config import get_settings
from src.core.logging import get_logger

logger = get_logger(__name__)

_engine: Engine | None = None


def _ensure_sqlite_dir(url: str) -> None:
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite" and parsed.database not in (None, "", ":memory:"):
        Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)


def get_engine() -> Engine:
    """Return the shared SQLAlchemy engine (lazy-created, cached)."""
    global _engine
    if _engine is None:
        url = get_settings().query_log_url
        _ensure_sqlite_dir(url)
        _engine = create_engine(url, pool_pre_ping=True, echo=False)
        logger.info("Query log engine created  url=%s", make_url(url).render_as_string(hide_password=True))
    return _engine


def dispose_engine() -> None:
    """Drop the cached engine (used when settings change, e.g. in tests)."""
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None
