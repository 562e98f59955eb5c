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
Search endpoints for the HTTP interface.

Responses use the camelCase JSON shape the marketplace front-ends consume.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ...config import SearchSettings
from ...models.search import SearchFilters, SearchOptions, SearchResponse, SortBy
from ...services.analytics_aggregator import DateRange, SearchAnalyticsAggregator
from ...services.analytics_recorder import AnalyticsRecorder
from ...services.search_optimizer import SearchOptimizer
from ...services.search_service import SearchService, validate_search_filters
from ...utils.errors import SearchUnavailableError
from ..dependencies import (
    get_analytics_aggregator,
    get_analytics_recorder,
    get_search_optimizer,
    get_search_service,
    get_search_settings,
)

router = APIRouter(prefix="/api/search", tags=["search"])
logger = logging.getLogger(__name__)

MAX_SUGGESTIONS_PER_REQUEST = 10
POPULAR_LOCATIONS_LIMIT = 8
ANALYTICS_TYPES = ("metrics", "performance", "empty", "users", "trending", "popular")


# Request Models
class SearchRequest(BaseModel):
    """Request body for POST /api/search."""

    filters: dict[str, Any] = Field(default_factory=dict)
    options: dict[str, Any] = Field(default_factory=dict)


class SuggestionRequest(BaseModel):
    query: Any = None


class AnalyticsActionRequest(BaseModel):
    action: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _parse_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _parse_date(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _error(status_code: int, error: str, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error, "message": message, **extra})


def _build_options(page: Any, limit: Any, settings: SearchSettings, use_cache: bool = True) -> SearchOptions:
    """Page below 1 becomes 1; limit is clamped to [1, max_limit]."""
    return SearchOptions(
        page=max(1, _parse_int(page, 1)),
        limit=min(settings.max_limit, max(1, _parse_int(limit, settings.default_limit))),
        use_cache=use_cache,
    )


async def _page_extras(filters: SearchFilters, search_service: SearchService) -> dict[str, Any]:
    return {
        "categories": await search_service.get_categories(),
        "popularSearches": await search_service.get_popular_searches(),
        "filters": filters.to_record(),
    }


async def _run_search(
    filters: SearchFilters,
    options: SearchOptions,
    user_id: str | None,
    search_service: SearchService,
) -> JSONResponse | dict[str, Any]:
    """Run a search; empty filters browse the whole catalog."""
    sort_by = (filters.sort_by or SortBy.RELEVANCE).value
    extras = await _page_extras(filters, search_service)

    try:
        response = await search_service.search_services(filters, options, user_id=user_id)
    except SearchUnavailableError as e:
        return _error(
            500,
            "Search service temporarily unavailable",
            str(e),
            results=[],
            total=0,
            page=options.page,
            limit=options.limit,
            hasMore=False,
            totalPages=0,
        )

    return {
        "success": True,
        **response.to_payload(),
        **extras,
        "metadata": {
            "hasResults": bool(response.results),
            "appliedFilters": len(extras["filters"]),
            "sortBy": sort_by,
        },
    }


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


@router.get("")
async def search(
    q: str | None = None,
    location: str | None = None,
    category: str | None = None,
    service_types: str | None = Query(None, alias="serviceTypes"),
    min_price: str | None = Query(None, alias="minPrice"),
    max_price: str | None = Query(None, alias="maxPrice"),
    rating: str | None = None,
    sort_by: str | None = Query(None, alias="sortBy"),
    page: str | None = None,
    limit: str | None = None,
    source: str | None = None,
    x_user_id: str | None = Header(None),
    search_service: SearchService = Depends(get_search_service),
    settings: SearchSettings = Depends(get_search_settings),
):
    """
    Search services and products.

    Malformed filter values are dropped rather than rejected; an empty
    result page is a normal outcome, including for out-of-range pages.
    A query string with no usable criteria returns an empty page with a
    message instead of browsing the catalog.
    """
    filters = validate_search_filters(
        {
            "query": q,
            "location": location,
            "category": category,
            "serviceTypes": service_types,
            "minPrice": min_price,
            "maxPrice": max_price,
            "rating": rating,
            "sortBy": sort_by,
            "source": source,
        }
    )
    options = _build_options(page, limit, settings)
    if filters.is_empty():
        empty = SearchResponse(page=options.page, limit=options.limit)
        extras = await _page_extras(filters, search_service)
        return {"success": True, **empty.to_payload(), **extras, "message": "No search criteria provided"}

    return await _run_search(filters, options, x_user_id, search_service)


@router.post("")
async def search_with_body(
    request: SearchRequest,
    x_user_id: str | None = Header(None),
    search_service: SearchService = Depends(get_search_service),
    settings: SearchSettings = Depends(get_search_settings),
):
    """Search with a JSON body ``{filters, options}``; empty filters browse all."""
    filters = validate_search_filters(request.filters)
    raw = request.options
    options = _build_options(
        raw.get("page"),
        raw.get("limit"),
        settings,
        use_cache=raw.get("useCache", raw.get("use_cache")) is not False,
    )
    return await _run_search(filters, options, x_user_id, search_service)


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------


@router.get("/suggestions")
async def get_suggestions(
    q: str | None = None,
    limit: str | None = None,
    optimizer: SearchOptimizer = Depends(get_search_optimizer),
    aggregator: SearchAnalyticsAggregator = Depends(get_analytics_aggregator),
    settings: SearchSettings = Depends(get_search_settings),
):
    """Autocomplete suggestions; popular searches when no query is given."""
    query = (q or "").strip()
    count = min(max(1, _parse_int(limit, settings.max_suggestions)), MAX_SUGGESTIONS_PER_REQUEST)

    if not query:
        popular = await aggregator.get_popular_queries(settings.popular_window_days)
        return {"success": True, "suggestions": [p.query for p in popular[:count]], "type": "popular"}

    if len(query) < 2:
        return {"success": True, "suggestions": [], "type": "none", "message": "Query too short for suggestions"}

    suggestions = await optimizer.get_suggestions(query)
    return {"success": True, "suggestions": suggestions[:count], "type": "autocomplete", "query": query}


@router.post("/suggestions")
async def optimize_and_suggest(
    request: SuggestionRequest,
    optimizer: SearchOptimizer = Depends(get_search_optimizer),
):
    """Normalize a query and return suggestions for it."""
    if not isinstance(request.query, str) or not request.query.strip():
        return _error(400, "Invalid query", "Query parameter is required and must be a string")

    return {
        "success": True,
        "originalQuery": request.query,
        "optimizedQuery": optimizer.optimize_query(request.query),
        "suggestions": await optimizer.get_suggestions(request.query),
    }


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------


@router.get("/analytics")
async def get_analytics(
    type: str = "metrics",
    days: str | None = None,
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    aggregator: SearchAnalyticsAggregator = Depends(get_analytics_aggregator),
):
    """Search analytics for dashboards."""
    window = max(1, _parse_int(days, 7))

    if type == "metrics":
        date_range = None
        if start_date and end_date:
            try:
                date_range = DateRange(start=_parse_date(start_date), end=_parse_date(end_date))
            except ValueError:
                return _error(400, "Invalid date range", "startDate and endDate must be ISO-8601 dates")
            if date_range.start > date_range.end:
                return _error(400, "Invalid date range", "startDate must not be after endDate")
        data: Any = (await aggregator.get_search_metrics(date_range)).model_dump(mode="json", by_alias=True)
    elif type == "performance":
        data = (await aggregator.get_performance_metrics(window)).model_dump(mode="json", by_alias=True)
    elif type == "empty":
        data = (await aggregator.get_empty_search_analytics(window)).model_dump(mode="json", by_alias=True)
    elif type == "users":
        data = (await aggregator.get_user_search_behavior(window)).model_dump(mode="json", by_alias=True)
    elif type == "trending":
        data = [c.model_dump(by_alias=True) for c in await aggregator.get_trending_categories(window)]
    elif type == "popular":
        data = [q.model_dump(by_alias=True) for q in await aggregator.get_popular_queries(window)]
    else:
        return _error(400, "Invalid analytics type", f"Supported types: {', '.join(ANALYTICS_TYPES)}")

    return {"success": True, "data": data}


@router.post("/analytics")
async def record_analytics(
    request: AnalyticsActionRequest,
    recorder: AnalyticsRecorder = Depends(get_analytics_recorder),
):
    """Record client-measured search performance."""
    if request.action != "record_performance":
        return _error(400, "Invalid action", "Supported actions: record_performance")

    data = request.data
    query = data.get("query")
    response_time = data.get("responseTime")
    if not isinstance(query, str) or isinstance(response_time, bool) or not isinstance(response_time, (int, float)):
        return _error(400, "Invalid performance data", "query (string) and responseTime (number) are required")

    await recorder.record_search_performance(
        query,
        response_time,
        _parse_int(data.get("resultCount"), 0),
        bool(data.get("fromCache", False)),
    )
    return {"success": True, "message": "Performance data recorded successfully"}


# ---------------------------------------------------------------------------
# Locations
# ---------------------------------------------------------------------------


@router.get("/popular-locations")
async def get_popular_locations(search_service: SearchService = Depends(get_search_service)):
    locations = await search_service.get_popular_locations(POPULAR_LOCATIONS_LIMIT)
    return {"success": True, "locations": locations, "total": len(locations)}
