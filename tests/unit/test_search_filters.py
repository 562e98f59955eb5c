"""Tests for filter validation and result formatting."""

import math

import pytest

from mounasabet_search.models.search import SearchFilters, SortBy
from mounasabet_search.services.search_service import format_search_results, validate_search_filters


class TestValidateSearchFilters:
    def test_trims_text_fields(self):
        filters = validate_search_filters({"query": "  wedding cake ", "location": " Dubai ", "category": " Catering"})

        assert filters.query == "wedding cake"
        assert filters.location == "Dubai"
        assert filters.category == "Catering"

    def test_strips_unknown_fields(self):
        filters = validate_search_filters({"query": "cake", "dropTables": True, "availability": "soon"})
        assert filters == SearchFilters(query="cake")

    @pytest.mark.parametrize(
        "price_range",
        [[500, 100], [-10, 100], ["abc", 100], [100], "100-500", [math.nan, 100], 42],
    )
    def test_malformed_price_range_dropped(self, price_range):
        filters = validate_search_filters({"query": "cake", "priceRange": price_range})
        assert filters.price_range is None
        assert filters.query == "cake"

    def test_numeric_string_price_range_accepted(self):
        filters = validate_search_filters({"priceRange": ["100", "500.5"]})
        assert filters.price_range == (100.0, 500.5)

    def test_min_max_price_keys(self):
        filters = validate_search_filters({"minPrice": "50", "maxPrice": "250"})
        assert filters.price_range == (50.0, 250.0)

    def test_min_price_without_max_dropped(self):
        assert validate_search_filters({"minPrice": "50"}).price_range is None

    @pytest.mark.parametrize("rating", [-1, 6, "abc", True, None, math.inf])
    def test_malformed_rating_dropped(self, rating):
        assert validate_search_filters({"rating": rating}).rating is None

    def test_numeric_string_rating_accepted(self):
        assert validate_search_filters({"rating": "4.5"}).rating == 4.5

    def test_unknown_sort_order_dropped(self):
        assert validate_search_filters({"sortBy": "cheapest"}).sort_by is None

    def test_sort_order_accepted(self):
        assert validate_search_filters({"sortBy": "price_low"}).sort_by is SortBy.PRICE_LOW

    def test_snake_case_keys_accepted(self):
        filters = validate_search_filters({"service_types": ["Photography"], "sort_by": "rating", "price_range": [0, 10]})

        assert filters.service_types == ("Photography",)
        assert filters.sort_by is SortBy.RATING
        assert filters.price_range == (0.0, 10.0)

    def test_service_types_from_csv(self):
        filters = validate_search_filters({"serviceTypes": "Catering, Photography,,"})
        assert filters.service_types == ("Catering", "Photography")

    @pytest.mark.parametrize("raw", [None, "query", 42, ["a"]])
    def test_non_mapping_input_yields_empty_filters(self, raw):
        assert validate_search_filters(raw) == SearchFilters()

    def test_blank_query_becomes_empty(self):
        assert validate_search_filters({"query": "   "}).query == ""


class TestFormatSearchResults:
    def test_missing_fields_take_defaults(self):
        (item,) = format_search_results([{"id": "svc-1", "name": "Grand Hall"}])

        assert item.description == ""
        assert item.rating == 0
        assert item.review_count == 0
        assert item.base_price == 0
        assert item.images == []
        assert item.location == ""
        assert item.type == "service"
        assert item.provider.is_verified is False

    def test_malformed_values_take_defaults(self):
        (item,) = format_search_results(
            [{"id": "svc-1", "rating": "five", "reviewCount": None, "basePrice": math.nan, "images": "a.jpg", "provider": "acme"}]
        )

        assert item.rating == 0
        assert item.review_count == 0
        assert item.base_price == 0
        assert item.images == []
        assert item.provider.name == ""

    def test_full_row_preserved(self):
        row = {
            "id": "svc-2",
            "type": "product",
            "name": "Rose Bouquet",
            "description": "Fresh roses",
            "images": ["rose.jpg"],
            "rating": 4.7,
            "reviewCount": 12,
            "basePrice": 150.0,
            "location": "Rabat",
            "provider": {"id": "p1", "name": "Flora", "isVerified": True},
        }
        (item,) = format_search_results([row])

        assert item.type == "product"
        assert item.rating == 4.7
        assert item.review_count == 12
        assert item.base_price == 150.0
        assert item.provider.name == "Flora"
        assert item.provider.is_verified is True

    def test_snake_case_row_keys(self):
        (item,) = format_search_results([{"id": "x", "review_count": 3, "base_price": 9.5, "provider": {"is_verified": 1}}])

        assert item.review_count == 3
        assert item.base_price == 9.5
        assert item.provider.is_verified is True

    def test_preserves_order(self):
        items = format_search_results([{"id": "a"}, {"id": "b"}, {"id": "c"}])
        assert [i.id for i in items] == ["a", "b", "c"]
