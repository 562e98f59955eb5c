"""
Search optimizer: query suggestions and cache pre-warming.

Both operations are driven by recorded search popularity. Neither ever
raises into its caller; failures degrade to "no suggestions" and
"nothing warmed".
"""

import logging

from ..cache.search_cache import SearchResultCache
from ..config import SearchSettings
from ..models.search import SearchFilters, SearchOptions
from ..utils.query_normalizer import optimize_query
from .analytics_aggregator import SearchAnalyticsAggregator
from .search_service import SearchService

logger = logging.getLogger(__name__)


class SearchOptimizer:
    """Autocomplete suggestions and popular-query cache warm-up."""

    def __init__(
        self,
        search_service: SearchService,
        aggregator: SearchAnalyticsAggregator,
        cache: SearchResultCache | None,
        settings: SearchSettings,
    ):
        self.search_service = search_service
        self.aggregator = aggregator
        self.cache = cache
        self.settings = settings

    def optimize_query(self, raw: str | None) -> str:
        return optimize_query(raw)

    async def get_suggestions(self, partial_query: str | None) -> list[str]:
        """
        Suggest popular past queries containing ``partial_query``.

        Args:
            partial_query: What the user has typed so far

        Returns:
            Up to ``max_suggestions`` queries in popularity order; [] for
            blank input or when analytics are unavailable
        """
        needle = (partial_query or "").strip().lower()
        if not needle:
            return []

        try:
            popular = await self.aggregator.get_popular_queries(self.settings.suggestion_window_days)
        except Exception as e:
            logger.error(f"Failed to get search suggestions: {e}")
            return []

        return [item.query for item in popular if needle in item.query.lower()][: self.settings.max_suggestions]

    async def preload_popular_results(self) -> int:
        """
        Warm the result cache with page 1 of the most popular queries.

        Warm-up searches are not recorded as analytics, so they never
        inflate the popularity they are based on.

        Returns:
            Number of queries whose results were fetched
        """
        if self.cache is None or self.settings.preload_top_n == 0:
            return 0

        popular = await self.aggregator.get_popular_queries(self.settings.preload_window_days)
        options = SearchOptions(page=1, limit=self.settings.default_limit, use_cache=True, record_analytics=False)

        warmed = 0
        for item in popular[: self.settings.preload_top_n]:
            filters = SearchFilters(query=item.query)
            normalized = optimize_query(item.query)
            try:
                if await self.cache.is_cached(normalized, filters, options.page, options.limit):
                    logger.debug(f"Preload skipped, already cached: '{item.query}'")
                    continue
                await self.search_service.search_services(filters, options)
                warmed += 1
            except Exception as e:
                logger.warning(f"Failed to preload results for '{item.query}': {e}")

        logger.info(f"Preloaded results for {warmed} popular queries")
        return warmed
