# Copyright 2024 Heinrich Krupp
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Search analytics database manager.

Append-only SQLite store for search and performance records, with the
group-by/aggregate reads the analytics aggregator needs. Async operations
using aiosqlite.
"""

import json
import logging
import os
from typing import Any

import aiosqlite

from ..models.search_analytics import AnalyticsRecord, SearchPerformanceRecord, SearchQueryRecord

logger = logging.getLogger(__name__)


def _window(since: float, until: float | None) -> tuple[str, list[Any]]:
    """WHERE fragment bounding created_at to [since, until]."""
    if until is None:
        return "created_at >= ?", [since]
    return "created_at >= ? AND created_at <= ?", [since, until]


class SearchAnalyticsDB:
    """Async SQLite store for search analytics records."""

    def __init__(self, db_path: str):
        """
        Initialize search analytics database.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._initialized = False

    async def initialize(self):
        """Initialize database schema if not exists."""
        if self._initialized:
            return

        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS search_analytics (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    kind TEXT NOT NULL CHECK (kind IN ('search', 'performance')),
                    query TEXT NOT NULL,
                    filters TEXT,
                    result_count INTEGER DEFAULT 0,
                    user_id TEXT,
                    response_time_ms REAL,
                    from_cache INTEGER,
                    created_at REAL NOT NULL
                )
            """
            )

            await db.execute("CREATE INDEX IF NOT EXISTS idx_analytics_kind_created ON search_analytics(kind, created_at)")
            await db.execute("CREATE INDEX IF NOT EXISTS idx_analytics_query ON search_analytics(query)")
            await db.execute("CREATE INDEX IF NOT EXISTS idx_analytics_user ON search_analytics(user_id)")

            await db.commit()

        self._initialized = True
        logger.info(f"Search analytics database initialized at {self.db_path}")

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.initialize()

    # ── Writes ──────────────────────────────────────────────────────────

    async def append(self, record: AnalyticsRecord) -> int:
        """
        Persist one analytics record.

        Returns:
            ID of the inserted row
        """
        await self._ensure_initialized()

        if isinstance(record, SearchPerformanceRecord):
            user_id = None
            response_time_ms = record.response_time_ms
            from_cache = int(record.from_cache)
        else:
            user_id = record.user_id
            response_time_ms = None
            from_cache = None

        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                """
                INSERT INTO search_analytics
                (kind, query, filters, result_count, user_id, response_time_ms, from_cache, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    record.kind,
                    record.query,
                    json.dumps(record.filters) if record.filters else None,
                    record.result_count,
                    user_id,
                    response_time_ms,
                    from_cache,
                    record.created_at,
                ),
            )
            await db.commit()
            return cursor.lastrowid

    async def purge_older_than(self, cutoff: float) -> int:
        """
        Delete records created before ``cutoff`` (retention).

        Returns:
            Number of rows deleted
        """
        await self._ensure_initialized()

        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("DELETE FROM search_analytics WHERE created_at < ?", (cutoff,))
            await db.commit()
            deleted = cursor.rowcount
        logger.info(f"Purged {deleted} search analytics records older than {cutoff}")
        return deleted

    async def count_older_than(self, cutoff: float) -> int:
        """Count records of every kind that ``purge_older_than(cutoff)`` would delete."""
        await self._ensure_initialized()

        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("SELECT COUNT(*) FROM search_analytics WHERE created_at < ?", (cutoff,))
            row = await cursor.fetchone()
        return row[0] if row else 0

    # ── Reads ───────────────────────────────────────────────────────────

    async def count_searches(self, since: float, until: float | None = None, empty_only: bool = False) -> int:
        """Count search records in the window, optionally only zero-result ones."""
        await self._ensure_initialized()
        clause, params = _window(since, until)
        if empty_only:
            clause += " AND result_count = 0"

        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(f"SELECT COUNT(*) FROM search_analytics WHERE kind = 'search' AND {clause}", params)
            row = await cursor.fetchone()
            return row[0] if row else 0

    async def count_unique_queries(self, since: float, until: float | None = None) -> int:
        await self._ensure_initialized()
        clause, params = _window(since, until)

        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                f"SELECT COUNT(DISTINCT query) FROM search_analytics WHERE kind = 'search' AND {clause}", params
            )
            row = await cursor.fetchone()
            return row[0] if row else 0

    async def average_result_count(self, since: float, until: float | None = None) -> float | None:
        await self._ensure_initialized()
        clause, params = _window(since, until)

        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                f"""
                SELECT AVG(result_count) FROM search_analytics
                WHERE kind = 'search' AND result_count IS NOT NULL AND {clause}
            """,
                params,
            )
            row = await cursor.fetchone()
            return row[0] if row and row[0] is not None else None

    async def query_counts(
        self, since: float, until: float | None = None, limit: int = 20, empty_only: bool = False
    ) -> list[tuple[str, int]]:
        """
        Group search records by query text.

        Returns:
            ``(query, count)`` pairs, most frequent first, blank queries excluded
        """
        await self._ensure_initialized()
        clause, params = _window(since, until)
        if empty_only:
            clause += " AND result_count = 0"

        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                f"""
                SELECT query, COUNT(*) AS count
                FROM search_analytics
                WHERE kind = 'search' AND query != '' AND {clause}
                GROUP BY query
                ORDER BY count DESC, query ASC
                LIMIT ?
            """,
                [*params, limit],
            )
            return [(row[0], row[1]) for row in await cursor.fetchall()]

    async def search_filters(self, since: float, until: float | None = None) -> list[dict[str, Any]]:
        """Decoded filter payloads of search records in the window."""
        await self._ensure_initialized()
        clause, params = _window(since, until)

        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                f"SELECT filters FROM search_analytics WHERE kind = 'search' AND filters IS NOT NULL AND {clause}", params
            )
            return [json.loads(row[0]) for row in await cursor.fetchall()]

    async def performance_records(self, since: float, until: float | None = None) -> list[SearchPerformanceRecord]:
        await self._ensure_initialized()
        clause, params = _window(since, until)

        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                f"""
                SELECT id, query, response_time_ms, result_count, from_cache, created_at
                FROM search_analytics
                WHERE kind = 'performance' AND response_time_ms IS NOT NULL AND {clause}
                ORDER BY created_at ASC
            """,
                params,
            )
            return [
                SearchPerformanceRecord.from_dict(
                    {
                        "id": row[0],
                        "query": row[1],
                        "response_time_ms": row[2],
                        "result_count": row[3],
                        "from_cache": row[4],
                        "created_at": row[5],
                    }
                )
                for row in await cursor.fetchall()
            ]

    async def user_search_counts(self, since: float, until: float | None = None) -> list[tuple[str, int]]:
        """Per-user search counts, most active first; anonymous records are excluded."""
        await self._ensure_initialized()
        clause, params = _window(since, until)

        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                f"""
                SELECT user_id, COUNT(*) AS count
                FROM search_analytics
                WHERE kind = 'search' AND user_id IS NOT NULL AND user_id != '' AND {clause}
                GROUP BY user_id
                ORDER BY count DESC, user_id ASC
            """,
                params,
            )
            return [(row[0], row[1]) for row in await cursor.fetchall()]

    async def recent_searches(self, limit: int = 100) -> list[SearchQueryRecord]:
        """Most recent search records, newest first."""
        await self._ensure_initialized()

        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                """
                SELECT id, query, filters, result_count, user_id, created_at
                FROM search_analytics
                WHERE kind = 'search'
                ORDER BY created_at DESC, id DESC
                LIMIT ?
            """,
                (limit,),
            )
            return [
                SearchQueryRecord.from_dict(
                    {
                        "id": row[0],
                        "query": row[1],
                        "filters": json.loads(row[2]) if row[2] else {},
                        "result_count": row[3],
                        "user_id": row[4],
                        "created_at": row[5],
                    }
                )
                for row in await cursor.fetchall()
            ]

    async def close(self):
        """Close database connections."""
        # aiosqlite connections are opened per operation
        pass
