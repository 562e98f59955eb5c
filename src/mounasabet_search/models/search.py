"""Search request and response models.

Attributes are snake_case; every model serializes with camelCase aliases
(``hasMore``, ``reviewCount``...) so HTTP payloads and cached snapshots keep
the shape the marketplace front-ends consume.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator
from pydantic.alias_generators import to_camel

_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SortBy(str, Enum):
    """Supported result orderings."""

    RELEVANCE = "relevance"
    POPULARITY = "popularity"
    PRICE_LOW = "price_low"
    PRICE_HIGH = "price_high"
    RATING = "rating"
    REVIEWS = "reviews"
    DISTANCE = "distance"


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


class SearchFilters(BaseModel):
    """Immutable per-request search filters."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True, extra="ignore")

    query: str = ""
    location: str | None = None
    category: str | None = None
    service_types: tuple[str, ...] = ()
    price_range: tuple[float, float] | None = None
    rating: float | None = Field(default=None, ge=0.0, le=5.0)
    sort_by: SortBy | None = None
    # Analytics-only annotation (where the search was issued from); never affects results
    source: str | None = None

    @model_validator(mode="after")
    def _check_price_range(self) -> SearchFilters:
        if self.price_range is not None:
            low, high = self.price_range
            if low < 0 or low > high:
                raise ValueError(f"invalid price range: {self.price_range}")
        return self

    def is_empty(self) -> bool:
        """True when no criterion narrows the catalog."""
        return not (self.query or self.location or self.category or self.service_types or self.price_range or self.rating)

    def to_record(self) -> dict[str, Any]:
        """Serialize the set fields for analytics persistence."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True, exclude_defaults=True)


class SearchOptions(BaseModel):
    """Pagination and execution options for a single search."""

    model_config = _CAMEL

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=12, ge=1)
    use_cache: bool = True
    record_analytics: bool = True


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class ProviderSummary(BaseModel):
    """Provider fields surfaced alongside a result."""

    model_config = _CAMEL

    id: str = ""
    name: str = ""
    is_verified: bool = False


class SearchResultItem(BaseModel):
    """A single catalog entry surfaced by search.

    Every field has a default so partial upstream rows never produce
    missing values in a formatted result.
    """

    model_config = _CAMEL

    id: str = ""
    type: Literal["service", "product"] = "service"
    name: str = ""
    description: str = ""
    images: list[str] = Field(default_factory=list)
    rating: float = 0
    review_count: int = 0
    base_price: float = 0
    location: str = ""
    provider: ProviderSummary = Field(default_factory=ProviderSummary)


class SearchResponse(BaseModel):
    """One page of search results."""

    model_config = _CAMEL

    results: list[SearchResultItem] = Field(default_factory=list)
    total: int = Field(default=0, ge=0)
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=12, ge=1)
    has_more: bool = False
    total_pages: int = Field(default=0, ge=0)

    @computed_field
    @property
    def has_next(self) -> bool:
        return self.has_more

    @computed_field
    @property
    def has_prev(self) -> bool:
        return self.page > 1 and self.total_pages > 0

    @classmethod
    def build(cls, results: list[SearchResultItem], total: int, page: int, limit: int) -> SearchResponse:
        """Assemble a page, deriving ``total_pages`` and ``has_more``."""
        total_pages = math.ceil(total / limit) if limit > 0 else 0
        return cls(
            results=results,
            total=total,
            page=page,
            limit=limit,
            has_more=page < total_pages,
            total_pages=total_pages,
        )

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready dict using the camelCase wire names."""
        return self.model_dump(mode="json", by_alias=True)
