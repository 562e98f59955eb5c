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

"""Search analytics records and aggregate result models."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

RecordKind = Literal["search", "performance"]


# ---------------------------------------------------------------------------
# Persisted records (append-only)
# ---------------------------------------------------------------------------


@dataclass
class SearchQueryRecord:
    """One executed search: the query, the filters applied and how many results matched."""

    query: str
    filters: dict[str, Any] = field(default_factory=dict)
    result_count: int = 0
    user_id: str | None = None
    created_at: float = field(default_factory=time.time)
    id: int | None = None

    kind: RecordKind = field(default="search", init=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SearchQueryRecord:
        """Create instance from dictionary."""
        return cls(
            id=data.get("id"),
            query=data["query"],
            filters=data.get("filters") or {},
            result_count=data.get("result_count", 0),
            user_id=data.get("user_id"),
            created_at=data["created_at"],
        )


@dataclass
class SearchPerformanceRecord:
    """Timing twin of a search record."""

    query: str
    response_time_ms: float
    result_count: int = 0
    from_cache: bool = False
    created_at: float = field(default_factory=time.time)
    id: int | None = None

    kind: RecordKind = field(default="performance", init=False)

    @property
    def filters(self) -> dict[str, Any]:
        """Legacy ``filters`` payload kept for consumers of the single-shape table."""
        return {
            "performance": {
                "responseTime": self.response_time_ms,
                "fromCache": self.from_cache,
                "timestamp": datetime.fromtimestamp(self.created_at, tz=timezone.utc).isoformat(),
            }
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SearchPerformanceRecord:
        """Create instance from dictionary."""
        return cls(
            id=data.get("id"),
            query=data["query"],
            response_time_ms=data.get("response_time_ms", 0.0),
            result_count=data.get("result_count", 0),
            from_cache=bool(data.get("from_cache", False)),
            created_at=data["created_at"],
        )


AnalyticsRecord = SearchQueryRecord | SearchPerformanceRecord


# ---------------------------------------------------------------------------
# Aggregates (read side). Defaults double as the degraded "empty" shape.
# ---------------------------------------------------------------------------


class _AggregateModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QueryCount(_AggregateModel):
    query: str
    count: int


class CategoryCount(_AggregateModel):
    category: str
    count: int


class SlowQuery(_AggregateModel):
    query: str
    average_time: float


class UserSearchCount(_AggregateModel):
    user_id: str
    search_count: int


class PerformanceSummary(_AggregateModel):
    average_response_time: float = 0.0
    cache_hit_rate: float = 0.0


class SearchMetrics(_AggregateModel):
    """Dashboard summary over a date range."""

    total_searches: int = 0
    unique_queries: int = 0
    popular_queries: list[QueryCount] = Field(default_factory=list)
    average_results_per_search: float = 0.0
    searches_with_no_results: int = 0
    performance_metrics: PerformanceSummary = Field(default_factory=PerformanceSummary)


class PerformanceMetrics(_AggregateModel):
    """Latency, cache efficiency and problem queries over a trailing window."""

    average_response_time: float = 0.0
    cache_hit_rate: float = 0.0
    total_searches: int = 0
    slow_queries: list[SlowQuery] = Field(default_factory=list)
    popular_queries: list[QueryCount] = Field(default_factory=list)
    empty_result_queries: list[QueryCount] = Field(default_factory=list)


class EmptySearchAnalytics(_AggregateModel):
    total_empty_searches: int = 0
    empty_search_rate: float = 0.0
    common_empty_queries: list[QueryCount] = Field(default_factory=list)


class UserSearchBehavior(_AggregateModel):
    unique_users: int = 0
    average_searches_per_user: float = 0.0
    top_searching_users: list[UserSearchCount] = Field(default_factory=list)
