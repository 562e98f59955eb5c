"""Best-effort persistence of search and performance records."""

import logging
import time
from typing import Any

from ..models.search_analytics import SearchPerformanceRecord, SearchQueryRecord
from ..storage.analytics_db import SearchAnalyticsDB

logger = logging.getLogger(__name__)


class AnalyticsRecorder:
    """
    Writes analytics records to the analytics store.

    Both operations swallow persistence errors: search must never fail
    because analytics failed to write.
    """

    def __init__(self, db: SearchAnalyticsDB):
        self.db = db

    async def record_search(
        self,
        query: str,
        filters: dict[str, Any] | None,
        result_count: int,
        user_id: str | None = None,
        created_at: float | None = None,
    ) -> None:
        """Record one search query with the filters applied and its result count."""
        try:
            record = SearchQueryRecord(
                query=(query or "").strip(),
                filters=dict(filters or {}),
                result_count=result_count,
                user_id=user_id or None,
                created_at=created_at if created_at is not None else time.time(),
            )
            await self.db.append(record)
        except Exception as e:
            logger.error(f"Failed to record search analytics: {e}")

    async def record_search_performance(
        self,
        query: str,
        response_time_ms: float,
        result_count: int,
        from_cache: bool,
        created_at: float | None = None,
    ) -> None:
        """Record the latency and cache outcome of one search."""
        try:
            record = SearchPerformanceRecord(
                query=(query or "").strip(),
                response_time_ms=float(response_time_ms),
                result_count=result_count,
                from_cache=bool(from_cache),
                created_at=created_at if created_at is not None else time.time(),
            )
            await self.db.append(record)
        except Exception as e:
            logger.error(f"Failed to record search performance: {e}")
