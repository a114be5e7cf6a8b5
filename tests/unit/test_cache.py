"""Tests for the cache-and-backoff policy."""

from unittest.mock import AsyncMock

import pytest

from pi_dashboard.data.cache import CacheConfig, UpstreamCache, UpstreamState
from pi_dashboard.data.errors import MalformedResponse, RateLimited, UpstreamUnavailable
from pi_dashboard.data.storage import MemoryStore


@pytest.fixture
def cache_config():
    return CacheConfig(window=60, backoff=600)


@pytest.fixture
def cache(cache_config, memory_store, clock):
    return UpstreamCache("price:USD", cache_config, memory_store, clock=clock)


class TestCacheConfig:
    """Test CacheConfig parsing."""

    def test_defaults(self):
        config = CacheConfig.from_dict(None)

        assert config.window == 900
        assert config.backoff == 4 * 60 * 60
        assert config.persist is True

    def test_from_dict(self):
        config = CacheConfig.from_dict({'window': '30', 'backoff': 120, 'persist': False})

        assert config.window_ms == 30_000
        assert config.backoff_ms == 120_000
        assert config.persist is False


class TestUpstreamCache:
    """Test UpstreamCache behavior."""

    @pytest.mark.asyncio
    async def test_fresh_fetch_is_cached(self, cache):
        factory = AsyncMock(return_value={'price': 0.5})

        result = await cache.fetch(factory)

        assert result.ok
        assert result.value == {'price': 0.5}
        assert result.error is None
        assert result.from_cache is False
        assert cache.entry.payload == {'price': 0.5}

    @pytest.mark.asyncio
    async def test_valid_entry_skips_network(self, cache, clock):
        factory = AsyncMock(return_value={'price': 0.5})
        await cache.fetch(factory)
        clock.advance(59)

        result = await cache.fetch(factory)

        assert factory.await_count == 1
        assert result.from_cache is True
        assert result.stale is False
        assert cache.get_stats()['hits'] == 1

    @pytest.mark.asyncio
    async def test_expired_entry_refetches(self, cache, clock):
        factory = AsyncMock(side_effect=[{'price': 0.5}, {'price': 0.6}])
        await cache.fetch(factory)
        clock.advance(60)

        result = await cache.fetch(factory)

        assert factory.await_count == 2
        assert result.value == {'price': 0.6}

    @pytest.mark.asyncio
    async def test_force_skips_window(self, cache):
        factory = AsyncMock(side_effect=[{'price': 0.5}, {'price': 0.7}])
        await cache.fetch(factory)

        result = await cache.fetch(factory, force=True)

        assert result.value == {'price': 0.7}

    @pytest.mark.asyncio
    async def test_rate_limit_without_cache_returns_error(self, cache, clock):
        factory = AsyncMock(side_effect=RateLimited("price API is rate limited"))

        result = await cache.fetch(factory)

        assert result.value is None
        assert result.error == "price API is rate limited"
        assert result.rate_limited is True
        assert result.reset_time == clock.now + 600_000
        assert cache.state == UpstreamState.RATE_LIMITED

    @pytest.mark.asyncio
    async def test_rate_limited_state_skips_network(self, cache, clock):
        factory = AsyncMock(side_effect=RateLimited())
        await cache.fetch(factory)
        clock.advance(300)

        result = await cache.fetch(factory)

        assert factory.await_count == 1
        assert result.rate_limited is True
        assert result.error

    @pytest.mark.asyncio
    async def test_rate_limit_serves_stale_entry(self, cache, clock):
        await cache.fetch(AsyncMock(return_value={'price': 0.5}))
        clock.advance(120)

        result = await cache.fetch(AsyncMock(side_effect=RateLimited()))

        assert result.value == {'price': 0.5}
        assert result.stale is True
        assert result.from_cache is True
        assert result.notice == "Using cached data due to API rate limits"

    @pytest.mark.asyncio
    async def test_backoff_expiry_calls_upstream_again(self, cache, clock, memory_store):
        await cache.fetch(AsyncMock(side_effect=RateLimited()))
        clock.advance(601)
        factory = AsyncMock(return_value={'price': 0.8})

        result = await cache.fetch(factory)

        assert factory.await_count == 1
        assert result.value == {'price': 0.8}
        assert cache.state == UpstreamState.AVAILABLE
        assert await memory_store.get(cache.rate_limit_key) is None

    @pytest.mark.asyncio
    async def test_reset_hint_is_used(self, cache, clock):
        hint = clock.now + 30_000
        await cache.fetch(AsyncMock(side_effect=RateLimited(reset_time=hint)))

        assert cache.rate_limit.disabled_until == hint

    @pytest.mark.asyncio
    async def test_past_reset_hint_falls_back_to_backoff(self, cache, clock):
        await cache.fetch(AsyncMock(side_effect=RateLimited(reset_time=clock.now - 1)))

        assert cache.rate_limit.disabled_until == clock.now + 600_000

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        UpstreamUnavailable("boom", status_code=503),
        MalformedResponse("missing fields"),
        RuntimeError("unexpected"),
    ])
    async def test_other_errors_serve_stale_without_rate_limit(self, cache, clock, error):
        await cache.fetch(AsyncMock(return_value={'price': 0.5}))
        clock.advance(120)

        result = await cache.fetch(AsyncMock(side_effect=error))

        assert result.value == {'price': 0.5}
        assert result.stale is True
        assert result.rate_limited is False
        assert result.exception is error
        assert result.notice == "Using cached data due to API error"
        assert cache.state == UpstreamState.AVAILABLE

    @pytest.mark.asyncio
    async def test_error_without_cache_has_no_value(self, cache):
        result = await cache.fetch(AsyncMock(side_effect=UpstreamUnavailable("down")))

        assert not result.ok
        assert result.error == "down"

    @pytest.mark.asyncio
    async def test_state_survives_restart(self, cache_config, memory_store, clock):
        first = UpstreamCache("news", cache_config, memory_store, clock=clock)
        await first.fetch(AsyncMock(return_value={'data': [1]}))
        clock.advance(90)
        await first.fetch(AsyncMock(side_effect=RateLimited()))

        second = UpstreamCache("news", cache_config, memory_store, clock=clock)
        await second.load()

        assert second.entry.payload == {'data': [1]}
        assert second.entry.timestamp == first.entry.timestamp
        assert second.state == UpstreamState.RATE_LIMITED
        assert second.rate_limit.disabled_until == first.rate_limit.disabled_until

    @pytest.mark.asyncio
    async def test_expired_rate_limit_dropped_on_load(self, cache_config, memory_store, clock):
        first = UpstreamCache("news", cache_config, memory_store, clock=clock)
        await first.fetch(AsyncMock(side_effect=RateLimited()))
        clock.advance(700)

        second = UpstreamCache("news", cache_config, memory_store, clock=clock)
        await second.load()

        assert second.state == UpstreamState.AVAILABLE
        assert await memory_store.get("news:rate_limit") is None

    @pytest.mark.asyncio
    async def test_no_persistence_when_disabled(self, memory_store, clock):
        cache = UpstreamCache("price:USD", CacheConfig(persist=False), memory_store, clock=clock)

        await cache.fetch(AsyncMock(return_value={'price': 0.5}))

        assert await memory_store.keys() == []

    @pytest.mark.asyncio
    async def test_clear_drops_entry_and_flag(self, cache, memory_store):
        await cache.fetch(AsyncMock(return_value={'price': 0.5}))
        cache.rate_limit.disabled_until = cache.clock() + 1000

        await cache.clear()

        assert cache.entry is None
        assert cache.state == UpstreamState.AVAILABLE
        assert await memory_store.get(cache.cache_key) is None

    def test_stats_shape(self):
        stats = UpstreamCache("history:EUR", store=MemoryStore()).get_stats()

        assert stats['name'] == "history:EUR"
        assert stats['state'] == "available"
        assert stats['has_entry'] is False
        assert stats['entry_age_seconds'] is None
