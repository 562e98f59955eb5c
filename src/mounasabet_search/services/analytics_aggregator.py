"""
Search analytics aggregation.

Read-side metrics over the analytics store for dashboards and the search
optimizer. Every public method degrades to its empty/zero shape and logs
the cause instead of raising: a dashboard shows "0" rather than an error.
"""

import logging
import time
from collections import Counter, defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from ..config import AnalyticsSettings
from ..models.search_analytics import (
    CategoryCount,
    EmptySearchAnalytics,
    PerformanceMetrics,
    PerformanceSummary,
    QueryCount,
    SearchMetrics,
    SearchPerformanceRecord,
    SlowQuery,
    UserSearchBehavior,
    UserSearchCount,
)
from ..storage.analytics_db import SearchAnalyticsDB

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class DateRange:
    start: datetime
    end: datetime


def _percentage(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole > 0 else 0.0


def summarize_performance(records: list[SearchPerformanceRecord]) -> PerformanceSummary:
    """Average latency and cache hit rate (0-100) over performance records."""
    if not records:
        return PerformanceSummary()
    average = sum(r.response_time_ms for r in records) / len(records)
    hits = sum(1 for r in records if r.from_cache)
    return PerformanceSummary(average_response_time=round(average, 2), cache_hit_rate=_percentage(hits, len(records)))


def find_slow_queries(records: list[SearchPerformanceRecord], threshold_ms: float, limit: int) -> list[SlowQuery]:
    """Queries whose average response time exceeds ``threshold_ms``, slowest first."""
    timings: dict[str, list[float]] = defaultdict(list)
    for record in records:
        timings[record.query].append(record.response_time_ms)

    slow = [
        SlowQuery(query=query, average_time=round(sum(times) / len(times), 2))
        for query, times in timings.items()
        if sum(times) / len(times) > threshold_ms
    ]
    slow.sort(key=lambda s: (-s.average_time, s.query))
    return slow[:limit]


class SearchAnalyticsAggregator:
    """Computes derived search metrics over trailing windows."""

    def __init__(self, db: SearchAnalyticsDB, settings: AnalyticsSettings, clock: Callable[[], float] = time.time):
        self.db = db
        self.settings = settings
        self._clock = clock

    def _since(self, days: int) -> float:
        return self._clock() - days * SECONDS_PER_DAY

    async def get_popular_queries(self, days: int = 7) -> list[QueryCount]:
        """Most frequent non-empty queries in the window (top 20)."""
        try:
            rows = await self.db.query_counts(self._since(days), limit=self.settings.popular_queries_limit)
            return [QueryCount(query=q, count=c) for q, c in rows]
        except Exception as e:
            logger.error(f"Failed to get popular queries: {e}")
            return []

    async def get_trending_categories(self, days: int = 7) -> list[CategoryCount]:
        """Categories most often filtered on in the window (top 10)."""
        try:
            counts: Counter[str] = Counter()
            for filters in await self.db.search_filters(self._since(days)):
                category = filters.get("category") if isinstance(filters, dict) else None
                if category:
                    counts[category] += 1

            ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
            return [CategoryCount(category=c, count=n) for c, n in ranked[: self.settings.trending_categories_limit]]
        except Exception as e:
            logger.error(f"Failed to get trending categories: {e}")
            return []

    async def get_search_metrics(self, date_range: DateRange | None = None) -> SearchMetrics:
        """Dashboard summary; defaults to the last 7 days."""
        end = date_range.end.timestamp() if date_range else self._clock()
        start = date_range.start.timestamp() if date_range else end - 7 * SECONDS_PER_DAY

        try:
            total = await self.db.count_searches(start, end)
            unique = await self.db.count_unique_queries(start, end)
            popular = await self.db.query_counts(start, end, limit=self.settings.popular_queries_limit)
            empty = await self.db.count_searches(start, end, empty_only=True)
            average_results = await self.db.average_result_count(start, end)
            performance = summarize_performance(await self.db.performance_records(start, end))

            return SearchMetrics(
                total_searches=total,
                unique_queries=unique,
                popular_queries=[QueryCount(query=q, count=c) for q, c in popular],
                average_results_per_search=round(average_results or 0.0, 2),
                searches_with_no_results=empty,
                performance_metrics=performance,
            )
        except Exception as e:
            logger.error(f"Failed to get search metrics: {e}")
            return SearchMetrics()

    async def get_performance_metrics(self, days: int = 7) -> PerformanceMetrics:
        """
        Latency, cache hit rate and problem queries.

        Latency figures come from performance records only; search records
        do not count as zero-latency samples.
        """
        since = self._since(days)
        limit = self.settings.top_list_limit

        try:
            records = await self.db.performance_records(since)
            summary = summarize_performance(records)
            total = await self.db.count_searches(since)
            popular = await self.db.query_counts(since, limit=self.settings.popular_queries_limit)
            empty = await self.db.query_counts(since, limit=limit, empty_only=True)

            return PerformanceMetrics(
                average_response_time=summary.average_response_time,
                cache_hit_rate=summary.cache_hit_rate,
                total_searches=total,
                slow_queries=find_slow_queries(records, self.settings.slow_query_threshold_ms, limit),
                popular_queries=[QueryCount(query=q, count=c) for q, c in popular],
                empty_result_queries=[QueryCount(query=q, count=c) for q, c in empty],
            )
        except Exception as e:
            logger.error(f"Failed to get performance metrics: {e}")
            return PerformanceMetrics()

    async def get_empty_search_analytics(self, days: int = 7) -> EmptySearchAnalytics:
        """How often searches come back empty, and for which queries."""
        since = self._since(days)

        try:
            total = await self.db.count_searches(since)
            empty = await self.db.count_searches(since, empty_only=True)
            common = await self.db.query_counts(since, limit=self.settings.top_list_limit, empty_only=True)

            return EmptySearchAnalytics(
                total_empty_searches=empty,
                empty_search_rate=_percentage(empty, total),
                common_empty_queries=[QueryCount(query=q, count=c) for q, c in common],
            )
        except Exception as e:
            logger.error(f"Failed to get empty search analytics: {e}")
            return EmptySearchAnalytics()

    async def get_user_search_behavior(self, days: int = 7) -> UserSearchBehavior:
        """Per-user search activity; anonymous searches are not counted."""
        try:
            per_user = await self.db.user_search_counts(self._since(days))
            if not per_user:
                return UserSearchBehavior()

            identified = sum(count for _, count in per_user)
            return UserSearchBehavior(
                unique_users=len(per_user),
                average_searches_per_user=round(identified / len(per_user), 2),
                top_searching_users=[
                    UserSearchCount(user_id=user_id, search_count=count)
                    for user_id, count in per_user[: self.settings.top_list_limit]
                ],
            )
        except Exception as e:
            logger.error(f"Failed to get user search behavior: {e}")
            return UserSearchBehavior()

