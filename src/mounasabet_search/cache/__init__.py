"""Result cache for catalog searches."""

from .redis_cache import RedisCache, generate_cache_key
from .search_cache import SearchResultCache

__all__ = ["RedisCache", "SearchResultCache", "generate_cache_key"]
