"""
End-to-end search pipeline tests against real SQLite stores.

Redis is replaced with an in-memory backend; everything else (catalog,
result cache, dispatcher, recorder, analytics store, aggregator) is real.
"""

import asyncio
import os
import tempfile
from unittest.mock import AsyncMock

import pytest

from mounasabet_search.cache.search_cache import SearchResultCache
from mounasabet_search.config import AnalyticsSettings, CacheSettings, SearchSettings
from mounasabet_search.models.search import SearchFilters, SearchOptions
from mounasabet_search.services.analytics_aggregator import SearchAnalyticsAggregator
from mounasabet_search.services.analytics_dispatcher import AnalyticsDispatcher
from mounasabet_search.services.analytics_recorder import AnalyticsRecorder
from mounasabet_search.services.search_optimizer import SearchOptimizer
from mounasabet_search.services.search_service import SearchService
from mounasabet_search.storage.analytics_db import SearchAnalyticsDB
from mounasabet_search.storage.catalog_db import CatalogDB
from mounasabet_search.utils.errors import CatalogUnavailableError, SearchUnavailableError


class InMemoryBackend:
    def __init__(self):
        self.data = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ttl_seconds=None):
        self.data[key] = value
        return True

    async def invalidate_pattern(self, pattern):
        count = len(self.data)
        self.data.clear()
        return count


class Pipeline:
    def __init__(self, tmpdir):
        self.catalog = CatalogDB(os.path.join(tmpdir, "catalog.db"))
        self.analytics_db = SearchAnalyticsDB(os.path.join(tmpdir, "analytics.db"))
        self.backend = InMemoryBackend()
        self.cache = SearchResultCache(self.backend, CacheSettings())
        self.recorder = AnalyticsRecorder(self.analytics_db)
        self.dispatcher = AnalyticsDispatcher(self.recorder)
        self.aggregator = SearchAnalyticsAggregator(self.analytics_db, AnalyticsSettings())
        self.service = SearchService(self.catalog, self.cache, self.dispatcher, self.aggregator, SearchSettings())
        self.optimizer = SearchOptimizer(self.service, self.aggregator, self.cache, SearchSettings())

    async def start(self):
        await self.catalog.initialize()
        await self.analytics_db.initialize()
        await self.dispatcher.start()

    async def settle(self):
        await asyncio.wait_for(self.dispatcher.join(), timeout=5)


@pytest.fixture
async def pipeline():
    with tempfile.TemporaryDirectory() as tmpdir:
        p = Pipeline(tmpdir)
        await p.start()
        try:
            yield p
        finally:
            await p.dispatcher.stop()


async def _seed(catalog):
    await catalog.add_provider("p1", "Royal Events", is_verified=True, rating=4.8, review_count=120, location="Dubai")
    await catalog.add_service("s1", "p1", "Wedding Venue", "Ballroom", "Venues", "Dubai", 5000)
    await catalog.add_service("s2", "p1", "Wedding Photography", "Full day", "Photography", "Dubai", 1500)
    await catalog.add_service("s3", "p1", "Birthday Hall", None, "Venues", "Dubai", 800)


class TestSearchPipeline:
    @pytest.mark.asyncio
    async def test_out_of_range_page_on_empty_catalog(self, pipeline):
        response = await pipeline.service.search_services(SearchFilters(query="anything"), SearchOptions(page=999, limit=1000))

        assert response.results == []
        assert response.total == 0
        assert response.page == 999
        assert response.limit == 1000
        assert response.has_more is False
        assert response.total_pages == 0

    @pytest.mark.asyncio
    async def test_miss_then_hit(self, pipeline):
        await _seed(pipeline.catalog)
        filters = SearchFilters(query="The Wedding")

        first = await pipeline.service.search_services(filters, SearchOptions(limit=1))
        second = await pipeline.service.search_services(filters, SearchOptions(limit=1))
        await pipeline.settle()

        assert first == second
        assert first.total == 2
        assert first.has_more is True

        metrics = await pipeline.aggregator.get_performance_metrics(7)
        assert metrics.total_searches == 2
        assert metrics.cache_hit_rate == 50

    @pytest.mark.asyncio
    async def test_normalized_queries_share_cache_entry(self, pipeline):
        await _seed(pipeline.catalog)

        await pipeline.service.search_services(SearchFilters(query="wedding venue"))
        await pipeline.catalog.add_service("s4", "p1", "Wedding Venue Deluxe", None, "Venues", "Dubai", 9000)
        cached = await pipeline.service.search_services(SearchFilters(query="  The WEDDING venue "))

        assert cached.total == 1

    @pytest.mark.asyncio
    async def test_analytics_recorded_with_raw_query(self, pipeline):
        await _seed(pipeline.catalog)

        await pipeline.service.search_services(SearchFilters(query="Wedding", category="Venues"), user_id="u1")
        await pipeline.settle()

        (record,) = await pipeline.analytics_db.recent_searches()
        assert record.query == "Wedding"
        assert record.filters == {"query": "Wedding", "category": "Venues"}
        assert record.result_count == 1
        assert record.user_id == "u1"

    @pytest.mark.asyncio
    async def test_analytics_failure_does_not_affect_search(self, pipeline):
        await _seed(pipeline.catalog)
        pipeline.analytics_db.append = AsyncMock(side_effect=RuntimeError("analytics store down"))

        response = await pipeline.service.search_services(SearchFilters(query="wedding"))
        await pipeline.settle()

        assert response.total == 2
        assert pipeline.dispatcher.get_stats()["errors"] == 0

    @pytest.mark.asyncio
    async def test_catalog_failure_raises(self, pipeline):
        pipeline.catalog.search = AsyncMock(side_effect=CatalogUnavailableError("search", RuntimeError("disk I/O error")))

        with pytest.raises(SearchUnavailableError):
            await pipeline.service.search_services(SearchFilters(query="wedding"))

    @pytest.mark.asyncio
    async def test_cache_outage_still_serves_results(self, pipeline):
        await _seed(pipeline.catalog)
        pipeline.backend.get = AsyncMock(side_effect=ConnectionError("redis down"))
        pipeline.backend.set = AsyncMock(side_effect=ConnectionError("redis down"))

        response = await pipeline.service.search_services(SearchFilters(query="wedding"))
        assert response.total == 2


class TestOptimizerPipeline:
    @pytest.mark.asyncio
    async def test_suggestions_from_recorded_searches(self, pipeline):
        await _seed(pipeline.catalog)
        for query in ["wedding venues", "wedding venues", "wedding photography", "birthday hall"]:
            await pipeline.service.search_services(SearchFilters(query=query), SearchOptions(use_cache=False))
        await pipeline.settle()

        assert await pipeline.optimizer.get_suggestions("wed") == ["wedding venues", "wedding photography"]

    @pytest.mark.asyncio
    async def test_preload_does_not_inflate_popularity(self, pipeline):
        await _seed(pipeline.catalog)
        await pipeline.service.search_services(SearchFilters(query="wedding"), SearchOptions(use_cache=False))
        await pipeline.settle()

        assert await pipeline.optimizer.preload_popular_results() == 1
        await pipeline.settle()

        popular = await pipeline.aggregator.get_popular_queries(7)
        assert [(p.query, p.count) for p in popular] == [("wedding", 1)]
        assert await pipeline.cache.is_cached("wedding", SearchFilters(query="wedding"), 1, 12)

        # Second run finds the page already warm
        assert await pipeline.optimizer.preload_popular_results() == 0
