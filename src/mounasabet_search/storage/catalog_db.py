"""
Catalog store for marketplace services and providers.

Translates ``SearchFilters`` into parameterized SQL over the services and
providers tables (aiosqlite). Rows come back shaped like the upstream
catalog records: camelCase keys with the provider nested.
"""

import json
import logging
import os
from collections.abc import Iterable
from typing import Any

import aiosqlite

from ..models.search import SearchFilters, SortBy
from ..utils.errors import CatalogUnavailableError
from ..utils.query_normalizer import tokenize

logger = logging.getLogger(__name__)

_SORT_ORDERS = {
    SortBy.PRICE_LOW: "COALESCE(s.base_price, 0) ASC",
    SortBy.PRICE_HIGH: "COALESCE(s.base_price, 0) DESC",
    SortBy.RATING: "COALESCE(p.rating, 0) DESC",
    SortBy.REVIEWS: "COALESCE(p.review_count, 0) DESC",
    # No coordinates in the catalog yet; location name is the stand-in
    SortBy.DISTANCE: "COALESCE(s.location, '') ASC",
    SortBy.POPULARITY: "COALESCE(p.rating, 0) DESC, COALESCE(p.review_count, 0) DESC",
    SortBy.RELEVANCE: "COALESCE(p.rating, 0) DESC, COALESCE(p.review_count, 0) DESC",
}

_SELECT_COLUMNS = """
    s.id, s.type, s.name, s.description, s.images, s.base_price, s.location, s.category,
    p.id, p.name, p.is_verified, p.rating, p.review_count
"""


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def build_where_clause(filters: SearchFilters, normalized_query: str) -> tuple[str, list[Any]]:
    """
    Build the WHERE clause for a catalog search.

    All filters are ANDed. Each query token must match the service name,
    description, category, location or the provider name.

    Returns:
        ``(sql_fragment, params)``
    """
    clauses = ["s.is_active = 1"]
    params: list[Any] = []

    for token in tokenize(normalized_query):
        pattern = _like_pattern(token)
        clauses.append(
            "(s.name LIKE ? ESCAPE '\\' OR s.description LIKE ? ESCAPE '\\' OR s.category LIKE ? ESCAPE '\\'"
            " OR s.location LIKE ? ESCAPE '\\' OR p.name LIKE ? ESCAPE '\\')"
        )
        params.extend([pattern] * 5)

    if filters.category:
        clauses.append("lower(s.category) = lower(?)")
        params.append(filters.category)

    if filters.service_types:
        placeholders = ", ".join("?" for _ in filters.service_types)
        clauses.append(f"lower(s.category) IN ({placeholders})")
        params.extend(t.lower() for t in filters.service_types)

    if filters.location:
        clauses.append(
            "(s.location LIKE ? ESCAPE '\\'"
            " OR EXISTS (SELECT 1 FROM service_coverage sc WHERE sc.service_id = s.id AND lower(sc.area) = lower(?))"
            " OR EXISTS (SELECT 1 FROM provider_coverage pc WHERE pc.provider_id = p.id AND lower(pc.area) = lower(?)))"
        )
        params.extend([_like_pattern(filters.location), filters.location, filters.location])

    if filters.price_range is not None:
        low, high = filters.price_range
        clauses.append("COALESCE(s.base_price, 0) BETWEEN ? AND ?")
        params.extend([low, high])

    if filters.rating is not None:
        clauses.append("COALESCE(p.rating, 0) >= ?")
        params.append(filters.rating)

    return " AND ".join(clauses), params


def _decode_images(service_id: str, raw: str | None) -> list[str]:
    """Image list from its JSON column; a corrupt value is logged and read as no images."""
    if not raw:
        return []
    try:
        images = json.loads(raw)
    except ValueError as e:
        logger.warning(f"Ignoring unreadable images for service {service_id}: {e}")
        return []
    if not isinstance(images, list):
        logger.warning(f"Ignoring non-list images for service {service_id}")
        return []
    return images


def _row_to_record(row: tuple) -> dict[str, Any]:
    images = _decode_images(row[0], row[4])
    return {
        "id": row[0],
        "type": row[1],
        "name": row[2],
        "description": row[3],
        "images": images,
        "basePrice": row[5],
        "location": row[6],
        "category": row[7],
        "rating": row[11],
        "reviewCount": row[12],
        "provider": {
            "id": row[8],
            "name": row[9],
            "isVerified": bool(row[10]),
        },
    }


class CatalogDB:
    """Async SQLite access to the searchable catalog."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._initialized = False

    async def initialize(self) -> None:
        """Create the catalog schema if it does not exist."""
        if self._initialized:
            return

        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.executescript(
                    """
                    CREATE TABLE IF NOT EXISTS providers (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        is_verified INTEGER NOT NULL DEFAULT 0,
                        rating REAL,
                        review_count INTEGER NOT NULL DEFAULT 0,
                        location TEXT
                    );
                    CREATE TABLE IF NOT EXISTS services (
                        id TEXT PRIMARY KEY,
                        provider_id TEXT NOT NULL REFERENCES providers(id),
                        type TEXT NOT NULL DEFAULT 'service',
                        name TEXT NOT NULL,
                        description TEXT,
                        category TEXT,
                        location TEXT,
                        images TEXT,
                        base_price REAL,
                        is_active INTEGER NOT NULL DEFAULT 1
                    );
                    CREATE TABLE IF NOT EXISTS service_coverage (
                        service_id TEXT NOT NULL REFERENCES services(id),
                        area TEXT NOT NULL
                    );
                    CREATE TABLE IF NOT EXISTS provider_coverage (
                        provider_id TEXT NOT NULL REFERENCES providers(id),
                        area TEXT NOT NULL
                    );
                    CREATE INDEX IF NOT EXISTS idx_services_category_active ON services(category, is_active);
                    CREATE INDEX IF NOT EXISTS idx_services_price ON services(base_price);
                    CREATE INDEX IF NOT EXISTS idx_services_provider ON services(provider_id, is_active);
                    CREATE INDEX IF NOT EXISTS idx_providers_rating ON providers(rating DESC, review_count DESC);
                    CREATE INDEX IF NOT EXISTS idx_service_coverage ON service_coverage(service_id);
                    CREATE INDEX IF NOT EXISTS idx_provider_coverage ON provider_coverage(provider_id);
                """
                )
                await db.commit()
        except (aiosqlite.Error, OSError) as e:
            raise CatalogUnavailableError("initialize", e) from e

        self._initialized = True
        logger.info(f"Catalog database initialized at {self.db_path}")

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.initialize()

    # ── Seeding ─────────────────────────────────────────────────────────

    async def add_provider(
        self,
        provider_id: str,
        name: str,
        is_verified: bool = False,
        rating: float | None = None,
        review_count: int = 0,
        location: str | None = None,
        coverage_areas: Iterable[str] = (),
    ) -> None:
        """Insert or replace a provider record."""
        await self._ensure_initialized()
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "INSERT OR REPLACE INTO providers (id, name, is_verified, rating, review_count, location) VALUES (?, ?, ?, ?, ?, ?)",
                (provider_id, name, int(is_verified), rating, review_count, location),
            )
            await db.execute("DELETE FROM provider_coverage WHERE provider_id = ?", (provider_id,))
            await db.executemany(
                "INSERT INTO provider_coverage (provider_id, area) VALUES (?, ?)",
                [(provider_id, area) for area in coverage_areas],
            )
            await db.commit()

    async def add_service(
        self,
        service_id: str,
        provider_id: str,
        name: str,
        description: str | None = None,
        category: str | None = None,
        location: str | None = None,
        base_price: float | None = None,
        images: Iterable[str] = (),
        coverage_area: Iterable[str] = (),
        is_active: bool = True,
        service_type: str = "service",
    ) -> None:
        """Insert or replace a service record."""
        await self._ensure_initialized()
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT OR REPLACE INTO services
                (id, provider_id, type, name, description, category, location, images, base_price, is_active)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    service_id,
                    provider_id,
                    service_type,
                    name,
                    description,
                    category,
                    location,
                    json.dumps(list(images)),
                    base_price,
                    int(is_active),
                ),
            )
            await db.execute("DELETE FROM service_coverage WHERE service_id = ?", (service_id,))
            await db.executemany(
                "INSERT INTO service_coverage (service_id, area) VALUES (?, ?)",
                [(service_id, area) for area in coverage_area],
            )
            await db.commit()

    # ── Queries ─────────────────────────────────────────────────────────

    async def search(
        self,
        filters: SearchFilters,
        normalized_query: str,
        sort_by: SortBy = SortBy.RELEVANCE,
        offset: int = 0,
        limit: int = 12,
    ) -> tuple[list[dict[str, Any]], int]:
        """
        Run a filtered, sorted, paginated catalog lookup.

        Returns:
            ``(rows, total)`` where ``total`` counts every match before pagination

        Raises:
            CatalogUnavailableError: if the store cannot be queried
        """
        where, params = build_where_clause(filters, normalized_query)
        order_by = _SORT_ORDERS.get(sort_by, _SORT_ORDERS[SortBy.RELEVANCE])
        base = f"FROM services s JOIN providers p ON p.id = s.provider_id WHERE {where}"

        try:
            await self._ensure_initialized()
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute(f"SELECT COUNT(*) {base}", params)
                row = await cursor.fetchone()
                total = row[0] if row else 0

                if total == 0 or offset >= total:
                    return [], total

                cursor = await db.execute(
                    f"SELECT {_SELECT_COLUMNS} {base} ORDER BY {order_by}, s.id ASC LIMIT ? OFFSET ?",
                    [*params, limit, offset],
                )
                rows = [_row_to_record(r) for r in await cursor.fetchall()]
        except CatalogUnavailableError:
            raise
        except (aiosqlite.Error, OSError) as e:
            raise CatalogUnavailableError("search", e) from e

        return rows, total

    async def list_categories(self) -> list[dict[str, Any]]:
        """Active service categories with their service counts, largest first."""
        try:
            await self._ensure_initialized()
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute(
                    """
                    SELECT category, COUNT(*) AS count FROM services
                    WHERE is_active = 1 AND category IS NOT NULL AND category != ''
                    GROUP BY category
                    ORDER BY count DESC, category ASC
                """
                )
                return [{"category": row[0], "count": row[1]} for row in await cursor.fetchall()]
        except (aiosqlite.Error, OSError) as e:
            raise CatalogUnavailableError("list_categories", e) from e

    async def popular_locations(self, limit: int = 8) -> list[str]:
        """Locations ranked by combined active-service and verified-provider counts."""
        try:
            await self._ensure_initialized()
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute(
                    """
                    SELECT location, SUM(count) AS total FROM (
                        SELECT location, COUNT(*) AS count FROM services
                        WHERE is_active = 1 AND location IS NOT NULL AND location != ''
                        GROUP BY location
                        UNION ALL
                        SELECT location, COUNT(*) AS count FROM providers
                        WHERE is_verified = 1 AND location IS NOT NULL AND location != ''
                        GROUP BY location
                    )
                    GROUP BY location
                    ORDER BY total DESC, location ASC
                    LIMIT ?
                """,
                    (limit,),
                )
                return [row[0] for row in await cursor.fetchall()]
        except (aiosqlite.Error, OSError) as e:
            raise CatalogUnavailableError("popular_locations", e) from e

    async def close(self) -> None:
        """Close database connections."""
        # aiosqlite connections are opened per operation
        pass
