# tests/unit/test_cache.py
"""
Unit tests for the two-tier cache
"""
import orjson
import pytest

from data.storage.cache import MISS, MemoryTTLCache, RedisCacheStore, TwoTierCache
from utils.constants import CacheNamespace


@pytest.mark.unit
class TestMemoryTTLCache:
    """Test cases for the in-process tier"""

    def test_read_before_expiry_is_a_hit(self, clock):
        cache = MemoryTTLCache(clock=clock)
        cache.set("k", {"v": 1}, ttl=10)

        clock.advance(9.9)

        assert cache.get("k") == {"v": 1}

    def test_read_at_expiry_is_a_miss_and_evicts(self, clock):
        cache = MemoryTTLCache(clock=clock)
        cache.set("k", "v", ttl=10)

        clock.advance(10)

        assert cache.get("k") is MISS
        assert len(cache) == 0

    def test_falsy_values_are_hits(self, clock):
        cache = MemoryTTLCache(clock=clock)
        cache.set("empty", [], ttl=10)
        cache.set("zero", 0, ttl=10)

        assert cache.get("empty") == []
        assert cache.get("zero") == 0
        assert not MISS

    def test_size_bound_evicts_oldest(self, clock):
        cache = MemoryTTLCache(max_size=2, clock=clock)
        cache.set("a", 1, ttl=10)
        cache.set("b", 2, ttl=10)
        cache.set("c", 3, ttl=10)

        assert cache.get("a") is MISS
        assert cache.get("c") == 3
        assert len(cache) == 2


@pytest.mark.unit
class TestTwoTierCache:
    """Test cases for TwoTierCache"""

    def test_key_layout(self):
        assert TwoTierCache.make_key(CacheNamespace.HOLDERS, "abc") == "solana/tokens/holders/abc"

    @pytest.mark.asyncio
    async def test_namespace_ttl_applies(self, cache, clock):
        await cache.set(CacheNamespace.DEX, "abc", {"pairs": []})

        clock.advance(59)
        assert await cache.get(CacheNamespace.DEX, "abc") == {"pairs": []}

        clock.advance(1)
        assert await cache.get(CacheNamespace.DEX, "abc") is MISS

    @pytest.mark.asyncio
    async def test_ttl_override(self, clock):
        cache = TwoTierCache(MemoryTTLCache(clock=clock), ttls={"dex": 5})

        await cache.set("dex", "abc", 1)
        clock.advance(5)

        assert await cache.get("dex", "abc") is MISS

    @pytest.mark.asyncio
    async def test_write_through_to_durable(self, durable_cache, fake_redis):
        await durable_cache.set(CacheNamespace.CODEX, "abc", {"symbol": "USDC"})

        assert "solana/tokens/codex/abc" in fake_redis.store

    @pytest.mark.asyncio
    async def test_durable_hit_repopulates_fast_tier(self, clock, fake_redis):
        writer = TwoTierCache(MemoryTTLCache(clock=clock), RedisCacheStore(client=fake_redis))
        await writer.set(CacheNamespace.CODEX, "abc", {"symbol": "USDC"})
        reader = TwoTierCache(MemoryTTLCache(clock=clock), RedisCacheStore(client=fake_redis))

        assert await reader.get(CacheNamespace.CODEX, "abc") == {"symbol": "USDC"}
        assert reader.get_stats()["durable_hits"] == 1

        fake_redis.store.clear()
        assert await reader.get(CacheNamespace.CODEX, "abc") == {"symbol": "USDC"}
        assert reader.get_stats()["hits"] == 1

    @pytest.mark.asyncio
    async def test_durable_failure_degrades_to_miss(self, durable_cache, fake_redis):
        fake_redis.fail = True

        assert await durable_cache.get(CacheNamespace.TRADE, "abc") is MISS
        await durable_cache.set(CacheNamespace.TRADE, "abc", {"price": 1})

        stats = durable_cache.get_stats()
        assert stats["degraded"] is True
        assert stats["errors"] == 2
        # fast tier still serves the write
        assert await durable_cache.get(CacheNamespace.TRADE, "abc") == {"price": 1}

    @pytest.mark.asyncio
    async def test_recovery_clears_degraded_flag(self, durable_cache, fake_redis):
        fake_redis.fail = True
        await durable_cache.get(CacheNamespace.TRADE, "abc")
        fake_redis.fail = False

        await durable_cache.set(CacheNamespace.TRADE, "abc", {"price": 1})

        assert durable_cache.degraded is False

    @pytest.mark.asyncio
    async def test_delete_removes_both_tiers(self, durable_cache, fake_redis):
        await durable_cache.set(CacheNamespace.CODEX, "abc", {"symbol": "USDC"})

        await durable_cache.delete(CacheNamespace.CODEX, "abc")

        assert await durable_cache.get(CacheNamespace.CODEX, "abc") is MISS
        assert fake_redis.store == {}

    def test_injected_fast_tier_is_kept(self, clock):
        fast = MemoryTTLCache(max_size=5, clock=clock)

        cache = TwoTierCache(fast)

        assert cache.fast is fast
        assert cache.fast.max_size == 5

    @pytest.mark.asyncio
    async def test_durable_hit_keeps_remaining_lifetime(self, clock, fake_redis):
        key = TwoTierCache.make_key(CacheNamespace.PROCESSED, "abc")
        fake_redis.store[key] = (orjson.dumps({"v": 1}), clock() + 0.5)
        reader = TwoTierCache(MemoryTTLCache(clock=clock), RedisCacheStore(client=fake_redis))

        assert await reader.get(CacheNamespace.PROCESSED, "abc") == {"v": 1}

        clock.advance(60)
        assert await reader.get(CacheNamespace.PROCESSED, "abc") is MISS

    @pytest.mark.asyncio
    async def test_durable_entry_expiring_now_is_a_miss(self, clock, fake_redis):
        key = TwoTierCache.make_key(CacheNamespace.PROCESSED, "abc")
        fake_redis.store[key] = (orjson.dumps({"v": 1}), clock() + 0.0004)
        reader = TwoTierCache(MemoryTTLCache(clock=clock), RedisCacheStore(client=fake_redis))

        assert await reader.get(CacheNamespace.PROCESSED, "abc") is MISS
        assert len(reader.fast) == 0

    @pytest.mark.asyncio
    async def test_undecodable_durable_entry_is_dropped(self, durable_cache, fake_redis):
        key = TwoTierCache.make_key(CacheNamespace.CODEX, "abc")
        fake_redis.store[key] = (b"{not json", None)

        assert await durable_cache.get(CacheNamespace.CODEX, "abc") is MISS
        assert key not in fake_redis.store
        assert durable_cache.degraded is False

    @pytest.mark.asyncio
    async def test_entry_that_fails_to_decode_is_dropped(self, durable_cache, fake_redis):
        await durable_cache.set(CacheNamespace.HOLDERS, "abc", [{"addr": "x", "bal": "1"}])

        result = await durable_cache.get_decoded(CacheNamespace.HOLDERS, "abc", lambda raw: [h["address"] for h in raw])

        assert result is MISS
        assert durable_cache.stats["corrupt"] == 1
        assert "solana/tokens/holders/abc" not in fake_redis.store
        assert await durable_cache.get(CacheNamespace.HOLDERS, "abc") is MISS

    @pytest.mark.asyncio
    async def test_decoded_value_is_returned(self, cache):
        await cache.set(CacheNamespace.PRICES, "prices", {"sol": "150"})

        assert await cache.get_decoded(CacheNamespace.PRICES, "prices", lambda raw: raw["sol"]) == "150"
        assert cache.stats["corrupt"] == 0
