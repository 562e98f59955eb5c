"""
Search Service - catalog search orchestration.

Request path: normalize query -> result cache -> (miss) catalog lookup ->
format -> cache write -> hand analytics to the background dispatcher.
The response never waits for analytics persistence.
"""

import logging
import math
import time
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from ..cache.search_cache import SearchResultCache
from ..config import SearchSettings
from ..models.search import (
    ProviderSummary,
    SearchFilters,
    SearchOptions,
    SearchResponse,
    SearchResultItem,
    SortBy,
)
from ..storage.catalog_db import CatalogDB
from ..utils.errors import CatalogUnavailableError, SearchUnavailableError
from ..utils.query_normalizer import optimize_query
from .analytics_aggregator import SearchAnalyticsAggregator
from .analytics_dispatcher import AnalyticsDispatcher

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Filter validation
# ---------------------------------------------------------------------------


def _pick(data: Mapping[str, Any], *keys: str) -> Any:
    """First non-None value among ``keys`` (camelCase and snake_case spellings)."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _as_number(value: Any) -> float | None:
    """Finite float from a number or numeric string; None for anything else (bools included)."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _clean_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _price_range(raw: Mapping[str, Any]) -> tuple[float, float] | None:
    candidate = _pick(raw, "priceRange", "price_range")
    if candidate is not None:
        if isinstance(candidate, (str, bytes)) or not isinstance(candidate, Iterable):
            return None
        bounds = list(candidate)
        if len(bounds) != 2:
            return None
        low, high = _as_number(bounds[0]), _as_number(bounds[1])
    else:
        low = _as_number(_pick(raw, "minPrice", "min_price"))
        high = _as_number(_pick(raw, "maxPrice", "max_price"))

    if low is None or high is None or low < 0 or low > high:
        return None
    return (low, high)


def _service_types(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        value = value.split(",")
    if isinstance(value, (list, tuple)):
        return tuple(t.strip() for t in value if isinstance(t, str) and t.strip())
    return ()


def validate_search_filters(raw: Mapping[str, Any] | SearchFilters | None) -> SearchFilters:
    """
    Sanitize untrusted filter input.

    Unknown keys are dropped, text fields trimmed, and malformed price
    ranges, ratings or sort orders silently discarded. Never raises.

    Args:
        raw: Filter mapping (camelCase or snake_case keys) or existing filters

    Returns:
        A valid ``SearchFilters``
    """
    if isinstance(raw, SearchFilters):
        return raw
    if not isinstance(raw, Mapping):
        return SearchFilters()

    validated: dict[str, Any] = {}

    query = _clean_str(_pick(raw, "query", "q"))
    if query:
        validated["query"] = query

    location = _clean_str(raw.get("location"))
    if location:
        validated["location"] = location

    category = _clean_str(raw.get("category"))
    if category:
        validated["category"] = category

    service_types = _service_types(_pick(raw, "serviceTypes", "service_types", "serviceType"))
    if service_types:
        validated["service_types"] = service_types

    price_range = _price_range(raw)
    if price_range:
        validated["price_range"] = price_range

    rating = _as_number(raw.get("rating"))
    if rating is not None and 0 <= rating <= 5:
        validated["rating"] = rating

    sort_by = _pick(raw, "sortBy", "sort_by")
    if isinstance(sort_by, SortBy):
        validated["sort_by"] = sort_by
    elif isinstance(sort_by, str) and sort_by in SortBy._value2member_map_:
        validated["sort_by"] = SortBy(sort_by)

    source = _clean_str(raw.get("source"))
    if source:
        validated["source"] = source

    try:
        return SearchFilters(**validated)
    except ValidationError as e:
        # Every field was checked above; keep the request usable regardless
        logger.warning(f"Discarding invalid search filters: {e}")
        return SearchFilters(query=validated.get("query", ""))


# ---------------------------------------------------------------------------
# Result formatting
# ---------------------------------------------------------------------------


def _number_or_zero(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return 0
    return value


def format_search_results(rows: Iterable[Any]) -> list[SearchResultItem]:
    """
    Format raw catalog rows into ``SearchResultItem`` values.

    Missing or malformed fields take their defaults: description "",
    rating/reviewCount/basePrice 0, images [], provider.isVerified False.
    """
    formatted = []
    for row in rows:
        data = row if isinstance(row, Mapping) else {}
        provider = data.get("provider")
        provider = provider if isinstance(provider, Mapping) else {}
        images = data.get("images")

        formatted.append(
            SearchResultItem(
                id=str(data.get("id") or ""),
                type="product" if data.get("type") == "product" else "service",
                name=str(data.get("name") or ""),
                description=str(data.get("description") or ""),
                images=[str(i) for i in images if i] if isinstance(images, list) else [],
                rating=_number_or_zero(data.get("rating")),
                review_count=int(_number_or_zero(_pick(data, "reviewCount", "review_count"))),
                base_price=_number_or_zero(_pick(data, "basePrice", "base_price")),
                location=str(data.get("location") or ""),
                provider=ProviderSummary(
                    id=str(provider.get("id") or ""),
                    name=str(provider.get("name") or ""),
                    is_verified=bool(_pick(provider, "isVerified", "is_verified")),
                ),
            )
        )
    return formatted


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class SearchService:
    """Serves catalog searches through the result cache and records their analytics."""

    def __init__(
        self,
        catalog: CatalogDB,
        cache: SearchResultCache | None,
        dispatcher: AnalyticsDispatcher | None,
        aggregator: SearchAnalyticsAggregator | None,
        settings: SearchSettings,
        slow_query_threshold_ms: float = 1000.0,
    ):
        self.catalog = catalog
        self.cache = cache
        self.dispatcher = dispatcher
        self.aggregator = aggregator
        self.settings = settings
        self.slow_query_threshold_ms = slow_query_threshold_ms

    async def search_services(
        self,
        filters: SearchFilters,
        options: SearchOptions | None = None,
        user_id: str | None = None,
    ) -> SearchResponse:
        """
        Search the catalog.

        Args:
            filters: Validated search filters
            options: Pagination and execution options
            user_id: Acting user, if authenticated

        Returns:
            One page of formatted results; an empty page is a normal outcome

        Raises:
            SearchUnavailableError: if the catalog cannot be queried
        """
        options = options or SearchOptions(limit=self.settings.default_limit)
        start = time.perf_counter()
        normalized_query = optimize_query(filters.query)

        if options.use_cache and self.cache is not None:
            cached = await self.cache.get_search_results(normalized_query, filters, options.page, options.limit)
            if cached is not None:
                logger.debug(f"Search cache hit for '{normalized_query}' (page {options.page})")
                self._track(filters, cached.total, user_id, start, from_cache=True, options=options)
                return cached

        sort_by = filters.sort_by or SortBy.RELEVANCE
        offset = (options.page - 1) * options.limit
        try:
            rows, total = await self.catalog.search(filters, normalized_query, sort_by, offset, options.limit)
        except CatalogUnavailableError as e:
            logger.exception(f"Catalog search failed for '{normalized_query}': {e}")
            raise SearchUnavailableError(cause=e) from e

        response = SearchResponse.build(format_search_results(rows), total, options.page, options.limit)

        if options.use_cache and self.cache is not None:
            if not await self.cache.set_search_results(normalized_query, filters, response):
                logger.debug(f"Search results for '{normalized_query}' not cached")

        self._track(filters, total, user_id, start, from_cache=False, options=options)
        return response

    def _track(
        self,
        filters: SearchFilters,
        result_count: int,
        user_id: str | None,
        start: float,
        from_cache: bool,
        options: SearchOptions,
    ) -> None:
        """Log slow responses and hand analytics to the dispatcher without awaiting them."""
        response_time_ms = round((time.perf_counter() - start) * 1000, 2)
        if response_time_ms > self.slow_query_threshold_ms:
            logger.warning(
                f"Slow search: '{filters.query}' took {response_time_ms}ms ({result_count} results, fromCache={from_cache})"
            )

        if not options.record_analytics or self.dispatcher is None:
            return

        query = filters.query.strip()
        self.dispatcher.submit_search(query, filters.to_record(), result_count, user_id)
        self.dispatcher.submit_performance(query, response_time_ms, result_count, from_cache)

    async def get_popular_searches(self) -> list[str]:
        """Popular query strings over the configured window, [] on failure."""
        if self.aggregator is None:
            return []
        popular = await self.aggregator.get_popular_queries(self.settings.popular_window_days)
        return [item.query for item in popular]

    async def get_categories(self) -> list[dict[str, Any]]:
        try:
            return await self.catalog.list_categories()
        except CatalogUnavailableError as e:
            logger.error(f"Failed to get service categories: {e}")
            return []

    async def get_popular_locations(self, limit: int = 8) -> list[str]:
        try:
            return await self.catalog.popular_locations(limit)
        except CatalogUnavailableError as e:
            logger.error(f"Failed to get popular locations: {e}")
            return []

    async def invalidate_cache(self) -> int:
        """Drop cached result pages after catalog changes."""
        if self.cache is None:
            return 0
        return await self.cache.invalidate_all()
