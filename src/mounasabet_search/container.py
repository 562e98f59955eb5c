"""
Composition root for the search service.

Owns the Redis cache, the catalog and analytics stores and the analytics
dispatcher, and wires the services on top of them. One container is built
per process entry point (web app lifespan, maintenance script) and passed
explicitly; there is no module-level instance.
"""

import asyncio
import logging

from .cache.redis_cache import RedisCache
from .cache.search_cache import SearchResultCache
from .config import Settings
from .services.analytics_aggregator import SearchAnalyticsAggregator
from .services.analytics_dispatcher import AnalyticsDispatcher
from .services.analytics_recorder import AnalyticsRecorder
from .services.search_optimizer import SearchOptimizer
from .services.search_service import SearchService
from .storage.analytics_db import SearchAnalyticsDB
from .storage.catalog_db import CatalogDB

logger = logging.getLogger(__name__)


class SearchContainer:
    """Builds, holds and tears down the search pipeline components."""

    def __init__(self, settings: Settings):
        self.settings = settings

        self.redis_cache: RedisCache | None = None
        self.result_cache: SearchResultCache | None = None
        self.catalog: CatalogDB | None = None
        self.analytics_db: SearchAnalyticsDB | None = None
        self.recorder: AnalyticsRecorder | None = None
        self.dispatcher: AnalyticsDispatcher | None = None
        self.aggregator: SearchAnalyticsAggregator | None = None
        self.search_service: SearchService | None = None
        self.optimizer: SearchOptimizer | None = None

        self._initialization_lock = asyncio.Lock()
        self._initialized = False

    async def initialize(self) -> None:
        """
        Initialize every component.

        The cache is optional: if Redis cannot be reached the pipeline runs
        uncached. Catalog and analytics store failures are fatal.
        """
        async with self._initialization_lock:
            if self._initialized:
                return

            logger.info("Initializing search container...")

            if self.settings.cache.enabled:
                await self._initialize_cache()
            else:
                logger.info("Result cache disabled by configuration")

            self.catalog = CatalogDB(str(self.settings.catalog_db_path))
            await self.catalog.initialize()

            self.analytics_db = SearchAnalyticsDB(str(self.settings.analytics_db_path))
            await self.analytics_db.initialize()

            analytics = self.settings.analytics
            self.recorder = AnalyticsRecorder(self.analytics_db)
            self.dispatcher = AnalyticsDispatcher(
                self.recorder,
                max_queue_size=analytics.dispatcher_queue_size,
                drain_timeout=analytics.dispatcher_drain_timeout,
            )
            await self.dispatcher.start()

            self.aggregator = SearchAnalyticsAggregator(self.analytics_db, analytics)
            self.search_service = SearchService(
                self.catalog,
                self.result_cache,
                self.dispatcher,
                self.aggregator,
                self.settings.search,
                slow_query_threshold_ms=analytics.slow_query_threshold_ms,
            )
            self.optimizer = SearchOptimizer(self.search_service, self.aggregator, self.result_cache, self.settings.search)

            self._initialized = True
            logger.info(f"Search container initialized (cache={'on' if self.result_cache else 'off'})")

    async def _initialize_cache(self) -> None:
        cache_settings = self.settings.cache
        redis_cache = RedisCache(
            url=cache_settings.redis_url,
            ttl_seconds=cache_settings.default_ttl_seconds,
            key_prefix=cache_settings.key_prefix,
            max_connections=cache_settings.max_connections,
        )
        try:
            await redis_cache.initialize()
        except Exception as e:
            logger.warning(f"Result cache initialization failed (non-fatal), serving uncached: {e}")
            return

        self.redis_cache = redis_cache
        self.result_cache = SearchResultCache(redis_cache, cache_settings)

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def close(self) -> None:
        """Stop the dispatcher (draining pending analytics), then close the stores and cache."""
        if self.dispatcher is not None:
            try:
                await self.dispatcher.stop()
            except Exception as e:
                logger.warning(f"Error stopping analytics dispatcher: {e}")
            self.dispatcher = None

        if self.analytics_db is not None:
            try:
                await self.analytics_db.close()
            except Exception as e:
                logger.warning(f"Error closing analytics database: {e}")
            self.analytics_db = None

        if self.catalog is not None:
            try:
                await self.catalog.close()
            except Exception as e:
                logger.warning(f"Error closing catalog database: {e}")
            self.catalog = None

        if self.redis_cache is not None:
            try:
                await self.redis_cache.close()
            except Exception as e:
                logger.warning(f"Error closing result cache: {e}")
            self.redis_cache = None
            self.result_cache = None

        self._initialized = False
        logger.info("Search container closed")
