"""
In-memory cache of lookup results.
Entries expire after a TTL; when full, the oldest entry is evicted.
"""
from datetime import datetime, timedelta
from typing import Hashable, Optional

from config import settings
from services.lookup_client import LookupResult

DEFAULT_TTL_MINUTES = 60
DEFAULT_MAX_ENTRIES = 2000


class EnrichmentCache:
    """Lookup results keyed by (name, brand, catalog number)."""

    def __init__(
        self,
        ttl_minutes: int = DEFAULT_TTL_MINUTES,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ):
        self.ttl = timedelta(minutes=ttl_minutes)
        self.max_entries = max_entries
        self._entries: dict[Hashable, tuple[datetime, LookupResult]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: Hashable) -> Optional[LookupResult]:
        """Cached result, or None if missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, result = entry
        if datetime.now() > expires_at:
            del self._entries[key]
            return None
        return result

    def put(self, key: Hashable, result: LookupResult) -> None:
        self._entries.pop(key, None)
        self._entries[key] = (datetime.now() + self.ttl, result)
        self._cleanup_expired()
        while len(self._entries) > self.max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]

    def clear(self) -> None:
        self._entries.clear()

    def _cleanup_expired(self) -> None:
        now = datetime.now()
        expired = [k for k, (exp, _) in self._entries.items() if now > exp]
        for k in expired:
            del self._entries[k]


_enrichment_cache: Optional[EnrichmentCache] = None


def get_enrichment_cache() -> EnrichmentCache:
    """Process-wide cache sized from settings."""
    global _enrichment_cache
    if _enrichment_cache is None:
        _enrichment_cache = EnrichmentCache(
            ttl_minutes=settings.enrichment_cache_ttl_minutes,
            max_entries=settings.enrichment_cache_max_entries,
        )
    return _enrichment_cache
