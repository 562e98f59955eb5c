"""
Tests for the Redis cache backend.

Tests cover:
- Cache hit/miss scenarios
- Per-entry TTL
- Pattern invalidation
- Non-fatal behavior when Redis fails or is not connected
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from mounasabet_search.cache.redis_cache import RedisCache, generate_cache_key


@pytest.fixture
def mock_redis():
    """Patch the connection pool and client; yield the mocked client."""
    with patch("mounasabet_search.cache.redis_cache.ConnectionPool") as mock_pool_cls, patch(
        "mounasabet_search.cache.redis_cache.Redis"
    ) as mock_redis_cls:
        mock_pool = MagicMock()
        mock_pool.aclose = AsyncMock()
        mock_pool_cls.from_url.return_value = mock_pool

        client = AsyncMock()
        client.ping = AsyncMock()
        client.aclose = AsyncMock()
        mock_redis_cls.return_value = client
        yield client


@pytest.fixture
async def cache(mock_redis):
    cache = RedisCache(url="redis://localhost:6379", ttl_seconds=300, key_prefix="test:cache:")
    await cache.initialize()
    yield cache
    await cache.close()


class TestGenerateCacheKey:
    def test_param_order_does_not_matter(self):
        assert generate_cache_key("search", {"a": 1, "b": 2}) == generate_cache_key("search", {"b": 2, "a": 1})

    def test_short_keys_are_readable(self):
        assert generate_cache_key("search", {"page": 1, "query": "cake"}) == "search:page=1:query=cake"

    def test_long_keys_are_hashed(self):
        key = generate_cache_key("search", {"query": "x" * 500})
        assert key.startswith("search:")
        assert len(key) == len("search:") + 32

    def test_zero_max_length_always_hashes(self):
        key = generate_cache_key("search", {"q": "a"}, max_length=0)
        assert key != "search:q=a"
        assert key.startswith("search:")

    def test_different_params_different_keys(self):
        assert generate_cache_key("search", {"q": "a"}, 0) != generate_cache_key("search", {"q": "b"}, 0)


class TestRedisCacheBasics:
    @pytest.mark.asyncio
    async def test_cache_miss_returns_none(self, cache, mock_redis):
        mock_redis.get = AsyncMock(return_value=None)

        assert await cache.get("nonexistent_key") is None
        mock_redis.get.assert_called_once_with("test:cache:nonexistent_key")

    @pytest.mark.asyncio
    async def test_cache_hit_returns_cached_value(self, cache, mock_redis):
        test_data = {"results": [], "total": 0}
        mock_redis.get = AsyncMock(return_value=json.dumps(test_data))
        mock_redis.setex = AsyncMock()

        assert await cache.set("test_key", test_data) is True
        assert await cache.get("test_key") == test_data

    @pytest.mark.asyncio
    async def test_default_ttl(self, cache, mock_redis):
        mock_redis.setex = AsyncMock()

        await cache.set("key", {"a": 1})

        key, ttl, payload = mock_redis.setex.call_args[0]
        assert key == "test:cache:key"
        assert ttl == 300
        assert json.loads(payload) == {"a": 1}

    @pytest.mark.asyncio
    async def test_explicit_ttl(self, cache, mock_redis):
        mock_redis.setex = AsyncMock()

        await cache.set("key", {"a": 1}, ttl_seconds=60)

        assert mock_redis.setex.call_args[0][1] == 60

    @pytest.mark.asyncio
    async def test_invalidate_pattern(self, cache, mock_redis):
        async def mock_scan_iter(match):
            if match == "test:cache:search:*":
                for key in ["test:cache:search:one", "test:cache:search:two"]:
                    yield key

        mock_redis.scan_iter = mock_scan_iter
        mock_redis.delete = AsyncMock(return_value=2)

        assert await cache.invalidate_pattern("search:*") == 2
        mock_redis.delete.assert_called_once_with("test:cache:search:one", "test:cache:search:two")


class TestRedisCacheFailures:
    @pytest.mark.asyncio
    async def test_get_error_is_a_miss(self, cache, mock_redis):
        mock_redis.get = AsyncMock(side_effect=ConnectionError("redis down"))
        assert await cache.get("key") is None

    @pytest.mark.asyncio
    async def test_set_error_returns_false(self, cache, mock_redis):
        mock_redis.setex = AsyncMock(side_effect=ConnectionError("redis down"))
        assert await cache.set("key", {"a": 1}) is False

    @pytest.mark.asyncio
    async def test_corrupt_value_is_a_miss(self, cache, mock_redis):
        mock_redis.get = AsyncMock(return_value="{not json")
        assert await cache.get("key") is None

    @pytest.mark.asyncio
    async def test_uninitialized_cache_is_inert(self):
        cache = RedisCache()

        assert cache.available is False
        assert await cache.get("key") is None
        assert await cache.set("key", {"a": 1}) is False
        assert await cache.invalidate_pattern("*") == 0

    @pytest.mark.asyncio
    async def test_initialize_failure_raises_and_cleans_up(self, mock_redis):
        mock_redis.ping = AsyncMock(side_effect=ConnectionError("refused"))
        cache = RedisCache()

        with pytest.raises(ConnectionError):
            await cache.initialize()

        assert cache.available is False
        mock_redis.aclose.assert_awaited()
