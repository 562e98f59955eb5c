"""Tests for catalog filtering, sorting and pagination."""

import os
import tempfile

import aiosqlite
import pytest

from mounasabet_search.models.search import SearchFilters, SortBy
from mounasabet_search.storage.catalog_db import CatalogDB, build_where_clause
from mounasabet_search.utils.errors import CatalogUnavailableError


@pytest.fixture
async def catalog():
    with tempfile.TemporaryDirectory() as tmpdir:
        db = CatalogDB(os.path.join(tmpdir, "catalog.db"))
        await db.initialize()

        await db.add_provider("p1", "Royal Events", is_verified=True, rating=4.8, review_count=120, location="Dubai")
        await db.add_provider("p2", "Sweet Tooth", rating=4.2, review_count=30, location="Abu Dhabi", coverage_areas=["Sharjah"])
        await db.add_provider("p3", "Snap Studio", is_verified=True, rating=3.9, review_count=75, location="Dubai")

        await db.add_service("s1", "p1", "Grand Wedding Venue", "Ballroom for 500 guests", "Venues", "Dubai", 5000, ["hall.jpg"])
        await db.add_service("s2", "p2", "Birthday Cake", "Custom cakes", "Catering", "Abu Dhabi", 150)
        await db.add_service("s3", "p3", "Wedding Photography", None, "Photography", "Dubai", 1200, coverage_area=["Ajman"])
        await db.add_service("s4", "p2", "Wedding Cake", "Tiered cakes", "Catering", "Abu Dhabi", None)
        await db.add_service("s5", "p1", "Retired Venue", None, "Venues", "Dubai", 100, is_active=False)
        yield db


async def _ids(catalog, filters, sort_by=SortBy.RELEVANCE, normalized=None, offset=0, limit=50):
    from mounasabet_search.utils.query_normalizer import optimize_query

    rows, _ = await catalog.search(
        filters, normalized if normalized is not None else optimize_query(filters.query), sort_by, offset, limit
    )
    return [r["id"] for r in rows]


class TestFiltering:
    @pytest.mark.asyncio
    async def test_every_token_must_match(self, catalog):
        assert sorted(await _ids(catalog, SearchFilters(query="wedding cake"))) == ["s4"]

    @pytest.mark.asyncio
    async def test_query_matches_provider_name(self, catalog):
        assert sorted(await _ids(catalog, SearchFilters(query="snap"))) == ["s3"]

    @pytest.mark.asyncio
    async def test_inactive_services_hidden(self, catalog):
        assert "s5" not in await _ids(catalog, SearchFilters())

    @pytest.mark.asyncio
    async def test_category_case_insensitive(self, catalog):
        assert sorted(await _ids(catalog, SearchFilters(category="catering"))) == ["s2", "s4"]

    @pytest.mark.asyncio
    async def test_service_types(self, catalog):
        ids = await _ids(catalog, SearchFilters(service_types=("Photography", "Venues")))
        assert sorted(ids) == ["s1", "s3"]

    @pytest.mark.asyncio
    async def test_location_includes_coverage_areas(self, catalog):
        assert sorted(await _ids(catalog, SearchFilters(location="Sharjah"))) == ["s2", "s4"]
        assert sorted(await _ids(catalog, SearchFilters(location="ajman"))) == ["s3"]

    @pytest.mark.asyncio
    async def test_price_range_inclusive_and_null_is_zero(self, catalog):
        assert sorted(await _ids(catalog, SearchFilters(price_range=(0, 150)))) == ["s2", "s4"]
        assert sorted(await _ids(catalog, SearchFilters(price_range=(1200, 5000)))) == ["s1", "s3"]

    @pytest.mark.asyncio
    async def test_rating_floor_inclusive(self, catalog):
        assert sorted(await _ids(catalog, SearchFilters(rating=4.2))) == ["s1", "s2", "s4"]

    @pytest.mark.asyncio
    async def test_filters_are_anded(self, catalog):
        filters = SearchFilters(query="wedding", location="Dubai", rating=4.5)
        assert await _ids(catalog, filters) == ["s1"]

    @pytest.mark.asyncio
    async def test_like_wildcards_are_literal(self, catalog):
        assert await _ids(catalog, SearchFilters(query="100%")) == []
        assert await _ids(catalog, SearchFilters(query="_")) == []

    def test_where_clause_is_parameterized(self):
        where, params = build_where_clause(SearchFilters(category="x'; DROP TABLE services; --"), "")
        assert "DROP" not in where
        assert params == ["x'; DROP TABLE services; --"]


class TestSortingAndPaging:
    @pytest.mark.asyncio
    async def test_price_sorts(self, catalog):
        assert await _ids(catalog, SearchFilters(), SortBy.PRICE_LOW) == ["s4", "s2", "s3", "s1"]
        assert await _ids(catalog, SearchFilters(), SortBy.PRICE_HIGH) == ["s1", "s3", "s2", "s4"]

    @pytest.mark.asyncio
    async def test_relevance_orders_by_provider_rating(self, catalog):
        assert await _ids(catalog, SearchFilters()) == ["s1", "s2", "s4", "s3"]

    @pytest.mark.asyncio
    async def test_reviews_sort(self, catalog):
        assert await _ids(catalog, SearchFilters(), SortBy.REVIEWS) == ["s1", "s3", "s2", "s4"]

    @pytest.mark.asyncio
    async def test_pagination_total_counts_all_matches(self, catalog):
        rows, total = await catalog.search(SearchFilters(), "", SortBy.PRICE_LOW, offset=2, limit=2)
        assert total == 4
        assert [r["id"] for r in rows] == ["s3", "s1"]

    @pytest.mark.asyncio
    async def test_offset_past_end_is_empty_with_total(self, catalog):
        rows, total = await catalog.search(SearchFilters(), "", SortBy.RELEVANCE, offset=100, limit=10)
        assert rows == []
        assert total == 4

    @pytest.mark.asyncio
    async def test_row_shape(self, catalog):
        rows, _ = await catalog.search(SearchFilters(query="grand"), "grand")
        (row,) = rows
        assert row["basePrice"] == 5000
        assert row["images"] == ["hall.jpg"]
        assert row["rating"] == 4.8
        assert row["reviewCount"] == 120
        assert row["provider"] == {"id": "p1", "name": "Royal Events", "isVerified": True}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("stored", ["{bad", "\"hall.jpg\""])
    async def test_corrupt_images_do_not_fail_search(self, catalog, stored):
        async with aiosqlite.connect(catalog.db_path) as db:
            await db.execute("UPDATE services SET images = ? WHERE id = ?", (stored, "s1"))
            await db.commit()

        rows, total = await catalog.search(SearchFilters(query="wedding"), "wedding")

        assert total == 3
        assert {r["id"]: r["images"] for r in rows}["s1"] == []


class TestAuxiliary:
    @pytest.mark.asyncio
    async def test_categories(self, catalog):
        categories = await catalog.list_categories()
        assert categories[0] == {"category": "Catering", "count": 2}
        assert {c["category"] for c in categories} == {"Catering", "Photography", "Venues"}

    @pytest.mark.asyncio
    async def test_popular_locations(self, catalog):
        # Dubai: 2 active services + 2 verified providers; Abu Dhabi: 2 services
        assert await catalog.popular_locations() == ["Dubai", "Abu Dhabi"]

    @pytest.mark.asyncio
    async def test_unreadable_store_raises_catalog_unavailable(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            db = CatalogDB(tmpdir)  # a directory is not a database file
            with pytest.raises(CatalogUnavailableError):
                await db.search(SearchFilters(query="x"), "x")
