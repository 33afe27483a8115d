"""
DexScreener API Integration
DEX pair and liquidity data for Solana tokens
"""

from typing import Any, Dict, List, Optional

from loguru import logger

from config.settings import Endpoints
from data.http_client import RetryingFetchClient
from data.models import DexPair, select_canonical_pair
from data.storage.cache import MISS, TwoTierCache
from utils.constants import SOLANA_CHAIN_ID, CacheNamespace
from utils.errors import SourceUnavailable


class DexScreenerCollector:
    """DexScreener data collector"""

    SOURCE = "dexscreener"

    def __init__(self, client: RetryingFetchClient, cache: TwoTierCache, config: Optional[Dict] = None):
        """
        Initialize DexScreener collector

        Args:
            client: Shared retrying fetch client
            cache: Two-tier cache
            config: Configuration dictionary (dexscreener_api, dexscreener_search_api)
        """
        config = config or {}
        self.client = client
        self.cache = cache
        self.tokens_url = config.get('dexscreener_api', Endpoints.DEX_SCREENER_API)
        self.search_url = config.get('dexscreener_search_api', Endpoints.DEX_SCREENER_SEARCH)

        self.stats = {
            'cache_hits': 0,
            'fetches': 0,
            'pairs_found': 0,
            'pairs_filtered': 0,
        }

    def _parse_pairs(self, payload: Any, token_address: str) -> List[DexPair]:
        """Keep Solana pairs whose base token is the requested one"""
        raw_pairs = payload.get('pairs') if isinstance(payload, dict) else None
        if not raw_pairs:
            return []

        wanted = token_address.lower()
        pairs = []
        for raw in raw_pairs:
            base_address = ((raw.get('baseToken') or {}).get('address') or '').lower()
            if raw.get('chainId') != SOLANA_CHAIN_ID or base_address != wanted:
                self.stats['pairs_filtered'] += 1
                continue
            pairs.append(DexPair.from_api(raw))

        self.stats['pairs_found'] += len(pairs)
        return pairs

    async def load_pairs(self, token_address: str) -> List[DexPair]:
        """
        DEX pairs for a token

        Raises:
            SourceUnavailable: when the source fails after retries
        """
        cached = await self.cache.get_decoded(
            CacheNamespace.DEX, token_address, lambda raw: [DexPair.from_dict(p) for p in raw]
        )
        if cached is not MISS:
            self.stats['cache_hits'] += 1
            return cached

        self.stats['fetches'] += 1
        payload = await self.client.fetch_json(
            f"{self.tokens_url}{token_address}", source="dexscreener.pairs"
        )
        pairs = self._parse_pairs(payload, token_address)

        # An empty answer is not cached so a fresh listing shows up next call
        if pairs:
            await self.cache.set(CacheNamespace.DEX, token_address, [p.to_dict() for p in pairs])
        return pairs

    async def fetch_pairs(self, token_address: str) -> List[DexPair]:
        """DEX pairs, or an empty list when the source fails"""
        try:
            return await self.load_pairs(token_address)
        except SourceUnavailable as e:
            logger.warning(f"DexScreener pairs unavailable for {token_address}: {e}")
            return []

    async def fetch_token_summary(self, token_address: str) -> Optional[DexPair]:
        """Deepest Solana pair found by searching the token address"""
        cached = await self.cache.get_decoded(
            CacheNamespace.DEX_SEARCH, token_address, lambda raw: DexPair.from_dict(raw) if raw else None
        )
        if cached is not MISS:
            self.stats['cache_hits'] += 1
            return cached

        try:
            self.stats['fetches'] += 1
            payload = await self.client.fetch_json(
                f"{self.search_url}{token_address}", source="dexscreener.search"
            )
        except SourceUnavailable as e:
            logger.warning(f"DexScreener search failed for {token_address}: {e}")
            return None

        pair = select_canonical_pair(self._parse_pairs(payload, token_address))
        if pair is not None:
            await self.cache.set(CacheNamespace.DEX_SEARCH, token_address, pair.to_dict())
        return pair

    def get_stats(self) -> Dict:
        """Get collector statistics"""
        return self.stats.copy()
