# data/storage/cache.py

import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple, Union

import orjson
import redis.asyncio as redis
from redis.asyncio.client import Redis

from utils.constants import CACHE_KEY_PREFIX, DEFAULT_CACHE_TTLS, CacheNamespace
from utils.errors import CacheDegraded

logger = logging.getLogger(__name__)


class _Miss:
    """Sentinel returned on a cache miss; cached falsy values stay hits"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISS"


MISS = _Miss()


class MemoryTTLCache:
    """
    In-process map with per-entry expiry.
    A read after stored_at + ttl is a miss and evicts the entry.
    """

    def __init__(self, max_size: int = 10_000, clock: Callable[[], float] = time.monotonic):
        self.max_size = max_size
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}

    def get(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return MISS
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return MISS
        return value

    def set(self, key: str, value: Any, ttl: float) -> None:
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._evict()
        self._entries[key] = (value, self._clock() + ttl)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def _evict(self) -> None:
        now = self._clock()
        expired = [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]
        for k in expired:
            del self._entries[k]
        if len(self._entries) >= self.max_size:
            # Oldest insertion goes first
            oldest = next(iter(self._entries))
            del self._entries[oldest]

    def __len__(self) -> int:
        return len(self._entries)


class RedisCacheStore:
    """
    Durable tier on redis.asyncio; values are orjson-encoded.
    Errors are raised to the caller, TwoTierCache decides how to degrade.
    """

    def __init__(self, redis_url: Optional[str] = None, client: Optional[Redis] = None):
        self.redis_url = redis_url
        self.redis_client: Optional[Redis] = client
        self.is_connected = client is not None

    async def connect(self) -> None:
        """Establish connection to Redis server."""
        if self.redis_client is None:
            self.redis_client = redis.from_url(self.redis_url, decode_responses=False)
        await self.redis_client.ping()
        self.is_connected = True
        logger.info("Successfully connected to Redis cache")

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self.redis_client:
            await self.redis_client.aclose()
            self.is_connected = False
            logger.info("Disconnected from Redis cache")

    async def get(self, key: str) -> Union[Tuple[Any, Optional[float]], "_Miss"]:
        """Return (value, remaining_ttl_seconds) or MISS"""
        raw = await self.redis_client.get(key)
        if raw is None:
            return MISS
        try:
            value = orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.warning(f"Dropping undecodable cache entry {key}")
            await self.redis_client.delete(key)
            return MISS
        # -1 no expiry, -2 gone, 0 expires within the millisecond
        remaining_ms = await self.redis_client.pttl(key)
        if remaining_ms == -1:
            return value, None
        if remaining_ms <= 0:
            return MISS
        return value, remaining_ms / 1000

    async def set(self, key: str, value: Any, ttl: int) -> None:
        await self.redis_client.set(key, orjson.dumps(value), ex=int(ttl))

    async def delete(self, key: str) -> None:
        await self.redis_client.delete(key)


class TwoTierCache:
    """
    Fast in-process tier in front of an optional durable store.

    Values must be JSON-safe (dicts, lists, strings, numbers) so both tiers
    hand back the same shape. A failing durable tier degrades to misses.
    """

    def __init__(
        self,
        fast: Optional[MemoryTTLCache] = None,
        durable: Optional[RedisCacheStore] = None,
        ttls: Optional[Dict[str, int]] = None,
    ):
        self.fast = fast if fast is not None else MemoryTTLCache()
        self.durable = durable
        self.ttls = dict(DEFAULT_CACHE_TTLS)
        if ttls:
            self.ttls.update(ttls)
        self.degraded = False
        self.stats = {'hits': 0, 'durable_hits': 0, 'misses': 0, 'errors': 0, 'corrupt': 0}

    @staticmethod
    def make_key(namespace: Union[CacheNamespace, str], key: str) -> str:
        ns = getattr(namespace, 'value', namespace)
        return f"{CACHE_KEY_PREFIX}/{ns}/{key}"

    def ttl_for(self, namespace: Union[CacheNamespace, str]) -> int:
        ns = getattr(namespace, 'value', namespace)
        return self.ttls.get(ns, 300)

    def _mark_degraded(self, operation: str, key: str, error: Exception) -> None:
        self.stats['errors'] += 1
        if not self.degraded:
            self.degraded = True
            degraded = CacheDegraded(f"Durable cache {operation} failed for {key}: {error}")
            logger.error(f"{degraded}; serving misses until it recovers")

    def _mark_healthy(self) -> None:
        if self.degraded:
            self.degraded = False
            logger.info("Durable cache recovered")

    async def get(self, namespace: Union[CacheNamespace, str], key: str) -> Any:
        """Value or MISS; never raises"""
        full_key = self.make_key(namespace, key)

        value = self.fast.get(full_key)
        if value is not MISS:
            self.stats['hits'] += 1
            return value

        if self.durable is None:
            self.stats['misses'] += 1
            return MISS

        try:
            result = await self.durable.get(full_key)
        except Exception as e:
            self._mark_degraded('read', full_key, e)
            self.stats['misses'] += 1
            return MISS
        self._mark_healthy()

        if result is MISS:
            self.stats['misses'] += 1
            return MISS

        value, remaining = result
        self.fast.set(full_key, value, remaining or self.ttl_for(namespace))
        self.stats['durable_hits'] += 1
        return value

    async def get_decoded(self, namespace: Union[CacheNamespace, str], key: str,
                          decode: Callable[[Any], Any]) -> Any:
        """
        Cached value passed through decode, or MISS.
        An entry decode cannot read is dropped from both tiers and reads as a miss.
        """
        value = await self.get(namespace, key)
        if value is MISS:
            return MISS
        try:
            return decode(value)
        except (KeyError, TypeError, ValueError, AttributeError, ArithmeticError) as e:
            full_key = self.make_key(namespace, key)
            logger.warning(f"Dropping unreadable cache entry {full_key}: {e!r}")
            self.stats['corrupt'] += 1
            await self.delete(namespace, key)
            return MISS

    async def set(self, namespace: Union[CacheNamespace, str], key: str, value: Any,
                  ttl: Optional[int] = None) -> None:
        """Write through both tiers; never raises"""
        full_key = self.make_key(namespace, key)
        ttl = ttl or self.ttl_for(namespace)

        self.fast.set(full_key, value, ttl)

        if self.durable is None:
            return
        try:
            await self.durable.set(full_key, value, ttl)
        except Exception as e:
            self._mark_degraded('write', full_key, e)
            return
        self._mark_healthy()

    async def delete(self, namespace: Union[CacheNamespace, str], key: str) -> None:
        full_key = self.make_key(namespace, key)
        self.fast.delete(full_key)
        if self.durable is None:
            return
        try:
            await self.durable.delete(full_key)
        except Exception as e:
            self._mark_degraded('delete', full_key, e)

    def get_stats(self) -> Dict[str, Any]:
        return {**self.stats, 'fast_entries': len(self.fast), 'degraded': self.degraded}
