"""
Search result cache.

Maps a fingerprint of (normalized query, result-affecting filters, page,
limit) to a ``SearchResponse`` snapshot. Entries carry their own expiry so
an entry past its TTL is a miss even if the backend still holds the key.
"""

import logging
import time
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from ..config import CacheSettings
from ..models.search import SearchFilters, SearchResponse
from .redis_cache import RedisCache, generate_cache_key

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = "search"


def search_fingerprint(normalized_query: str, filters: SearchFilters, page: int, limit: int) -> str:
    """
    Build the cache key for one result page.

    Only fields that change result content take part; analytics-only
    annotations such as ``source`` do not.
    """
    params: dict[str, Any] = {
        "query": normalized_query,
        "location": (filters.location or "").lower(),
        "category": (filters.category or "").lower(),
        "service_types": sorted(t.lower() for t in filters.service_types),
        "price_range": list(filters.price_range) if filters.price_range else None,
        "rating": filters.rating,
        "sort_by": filters.sort_by.value if filters.sort_by else None,
        "page": page,
        "limit": limit,
    }
    return generate_cache_key(CACHE_NAMESPACE, params, max_length=0)


class SearchResultCache:
    """Time-windowed cache of paginated search responses."""

    def __init__(self, backend: RedisCache, settings: CacheSettings, clock: Callable[[], float] = time.time):
        self.backend = backend
        self.settings = settings
        self._clock = clock
        self._volatile_categories = {c.lower() for c in settings.volatile_categories}

    def ttl_for(self, filters: SearchFilters) -> int:
        """Pick an entry lifetime from how volatile the filtered content is."""
        if filters.price_range is not None:
            return self.settings.volatile_ttl_seconds
        categories = {c.lower() for c in filters.service_types}
        if filters.category:
            categories.add(filters.category.lower())
        if categories & self._volatile_categories:
            return self.settings.volatile_ttl_seconds
        if not filters.query and filters.rating is None:
            return self.settings.static_ttl_seconds
        return self.settings.default_ttl_seconds

    async def get_search_results(
        self, normalized_query: str, filters: SearchFilters, page: int, limit: int
    ) -> SearchResponse | None:
        """
        Look up a cached result page.

        Returns:
            The cached response, or None on miss, expiry or any cache failure
        """
        key = search_fingerprint(normalized_query, filters, page, limit)
        try:
            envelope = await self.backend.get(key)
            if envelope is None:
                return None

            if envelope.get("expires_at", 0) <= self._clock():
                logger.debug(f"Cache entry expired: {key}")
                return None

            return SearchResponse.model_validate(envelope["response"])
        except (KeyError, TypeError, AttributeError, ValidationError) as e:
            logger.warning(f"Discarding unreadable cache entry {key}: {e}")
            return None
        except Exception as e:
            logger.warning(f"Search cache read failed for {key}: {e}")
            return None

    async def set_search_results(
        self,
        normalized_query: str,
        filters: SearchFilters,
        response: SearchResponse,
        ttl: int | None = None,
    ) -> bool:
        """
        Store a result page.

        Returns:
            True if written, False if the cache is unavailable or the write failed
        """
        ttl_seconds = ttl if ttl is not None else self.ttl_for(filters)
        key = search_fingerprint(normalized_query, filters, response.page, response.limit)
        envelope = {
            "expires_at": self._clock() + ttl_seconds,
            "response": response.to_payload(),
        }
        try:
            return await self.backend.set(key, envelope, ttl_seconds=ttl_seconds)
        except Exception as e:
            logger.warning(f"Search cache write failed for {key}: {e}")
            return False

    async def is_cached(self, normalized_query: str, filters: SearchFilters, page: int, limit: int) -> bool:
        return await self.get_search_results(normalized_query, filters, page, limit) is not None

    async def invalidate_all(self) -> int:
        """Drop every cached search page (e.g. after catalog changes)."""
        deleted = await self.backend.invalidate_pattern(f"{CACHE_NAMESPACE}:*")
        logger.info(f"Invalidated {deleted} cached search pages")
        return deleted
