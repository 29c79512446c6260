"""
Fetched-row cache.

In-memory TTL cache for provider results, keyed by (site, QueryDescriptor).
Sorting and filtering always run on a copy, so one cached fetch can serve
any number of differently shaped views (table pages, JSON, CSV).

The cache is process-local; entries are never mutated after insertion.
"""
from __future__ import annotations

import hashlib
import time
import threading
from dataclasses import dataclass
from typing import Any

from src.core.config import get_settings
from src.core.logging import get_logger
from src.query.descriptor import QueryDescriptor

logger = get_logger(__name__)


DEFAULT_MAX_SIZE = 64


@dataclass
class CacheEntry:
    """A single cached fetch."""
    key: str
    rows: list[dict[str, Any]]
    created_at: float
    ttl: float
    hit_count: int = 0

    @property
    def is_expired(self) -> bool:
        return (time.time() - self.created_at) > self.ttl


class RowCache:
    """Thread-safe in-memory TTL cache for fetched rows.

    Parameters
    ----------
    ttl : float
        Time-to-live in seconds for each entry.
    max_size : int
        Maximum number of entries. Oldest entries are evicted when full.
    """

    def __init__(self, ttl: float, max_size: int = DEFAULT_MAX_SIZE):
        self._store: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._ttl = ttl
        self._max_size = max_size
        self._hits = 0
        self._misses = 0

    # ── Public API ──────────────────────────────────────

    def get(self, site_url: str, descriptor: QueryDescriptor) -> list[dict[str, Any]] | None:
        """Return a copy of the cached rows, or ``None`` on miss / expiry."""
        key = self._make_key(site_url, descriptor)
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired:
                del self._store[key]
                self._misses += 1
                return None
            entry.hit_count += 1
            self._hits += 1
            logger.debug("Cache HIT key=%s hits=%d", key[:16], entry.hit_count)
            return [dict(row) for row in entry.rows]

    def put(self, site_url: str, descriptor: QueryDescriptor, rows: list[dict[str, Any]]) -> None:
        key = self._make_key(site_url, descriptor)
        with self._lock:
            if len(self._store) >= self._max_size and key not in self._store:
                self._evict_oldest()
            self._store[key] = CacheEntry(
                key=key,
                rows=[dict(row) for row in rows],
                created_at=time.time(),
                ttl=self._ttl,
            )
        logger.debug("Cache PUT key=%s size=%d", key[:16], len(self._store))

    def invalidate(self) -> int:
        """Flush all entries. Returns number of entries removed."""
        with self._lock:
            count = len(self._store)
            self._store.clear()
            return count

    def stats(self) -> dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._store),
                "max_size": self._max_size,
                "ttl_seconds": self._ttl,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / total, 3) if total else 0.0,
            }

    # ── Internals ───────────────────────────────────────

    @staticmethod
    def _make_key(site_url: str, descriptor: QueryDescriptor) -> str:
        raw = f"{site_url}|{descriptor.model_dump_json()}"
        return hashlib.sha256(raw.encode()).hexdigest()

    def _evict_oldest(self) -> None:
        if not self._store:
            return
        oldest_key = min(self._store, key=lambda k: self._store[k].created_at)
        del self._store[oldest_key]


# ── Module-level singleton ──────────────────────────────

_cache: RowCache | None = None


def get_cache() -> RowCache:
    """Return the process-wide row cache."""
    global _cache
    if _cache is None:
        _cache = RowCache(ttl=get_settings().cache_ttl_seconds)
    return _cache
