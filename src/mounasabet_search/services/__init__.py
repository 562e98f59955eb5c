"""Search, analytics and optimization services."""

from .analytics_aggregator import DateRange, SearchAnalyticsAggregator
from .analytics_dispatcher import AnalyticsDispatcher
from .analytics_recorder import AnalyticsRecorder
from .search_optimizer import SearchOptimizer
from .search_service import SearchService, format_search_results, validate_search_filters

__all__ = [
    "AnalyticsDispatcher",
    "AnalyticsRecorder",
    "DateRange",
    "SearchAnalyticsAggregator",
    "SearchOptimizer",
    "SearchService",
    "format_search_results",
    "validate_search_filters",
]
