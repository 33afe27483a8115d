"""
BirdEye API Integration
Token security, trade overview, reference prices and trending lists
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from loguru import logger

from config.settings import Endpoints
from data.http_client import RetryingFetchClient
from data.models import TokenSecurityData, TokenTradeData
from data.storage.cache import MISS, TwoTierCache
from utils.constants import PRICE_KEYS, CacheNamespace, TokenMint
from utils.errors import SourceUnavailable
from utils.helpers import to_decimal


class BirdeyeCollector:
    """BirdEye data collector"""

    SOURCE = "birdeye"

    def __init__(self, client: RetryingFetchClient, cache: TwoTierCache, config: Optional[Dict] = None):
        """
        Initialize BirdEye collector

        Args:
            client: Shared retrying fetch client
            cache: Two-tier cache
            config: Configuration dictionary (birdeye_api_key, birdeye_api)
        """
        config = config or {}
        self.client = client
        self.cache = cache
        self.api_key = config.get('birdeye_api_key', '')
        self.base_url = config.get('birdeye_api', Endpoints.BIRDEYE_API).rstrip('/')

        self.stats = {
            'cache_hits': 0,
            'fetches': 0,
            'defaults_served': 0,
        }

    def _headers(self) -> Dict[str, str]:
        return {'X-API-KEY': self.api_key} if self.api_key else {}

    async def _get(self, endpoint: str, source: str) -> Dict[str, Any]:
        """Fetch a BirdEye envelope and return its data block"""
        self.stats['fetches'] += 1
        payload = await self.client.fetch_json(
            f"{self.base_url}{endpoint}", headers=self._headers(), source=source
        )
        if not isinstance(payload, dict) or not payload.get('success') or not payload.get('data'):
            raise SourceUnavailable(f"{source} returned an unsuccessful payload", source=source)
        return payload['data']

    # ============= Security =============

    async def load_token_security(self, token_address: str) -> TokenSecurityData:
        """
        Security data for a token

        Raises:
            SourceUnavailable: when the source fails or reports no data
        """
        cached = await self.cache.get_decoded(CacheNamespace.SECURITY, token_address, TokenSecurityData.from_dict)
        if cached is not MISS:
            self.stats['cache_hits'] += 1
            logger.debug(f"Returning cached token security data for {token_address}")
            return cached

        data = await self._get(f"{Endpoints.TOKEN_SECURITY_ENDPOINT}{token_address}", "birdeye.security")
        security = TokenSecurityData.from_api(data)
        await self.cache.set(CacheNamespace.SECURITY, token_address, security.to_dict())
        return security

    async def fetch_token_security(self, token_address: str) -> TokenSecurityData:
        """Security data, or the zeroed default when the source fails"""
        try:
            return await self.load_token_security(token_address)
        except SourceUnavailable as e:
            self.stats['defaults_served'] += 1
            logger.warning(f"Security data unavailable for {token_address}, using defaults: {e}")
            return TokenSecurityData()

    # ============= Trade data =============

    async def load_token_trade_data(self, token_address: str) -> TokenTradeData:
        """
        Trade overview mapped into time buckets

        Raises:
            SourceUnavailable: when the source fails or reports no data
        """
        cached = await self.cache.get_decoded(CacheNamespace.TRADE, token_address, TokenTradeData.from_dict)
        if cached is not MISS:
            if cached.price > 0:
                self.stats['cache_hits'] += 1
                return cached
            logger.debug(f"Ignoring cached trade data without price for {token_address}")

        overview = await self._get(f"{Endpoints.TOKEN_OVERVIEW_ENDPOINT}{token_address}", "birdeye.trade")
        trade_data = TokenTradeData.from_overview(token_address, overview)
        await self.cache.set(CacheNamespace.TRADE, token_address, trade_data.to_dict())
        return trade_data

    async def fetch_token_trade_data(self, token_address: str) -> TokenTradeData:
        """Trade data, or the zeroed default when the source fails"""
        try:
            return await self.load_token_trade_data(token_address)
        except SourceUnavailable as e:
            self.stats['defaults_served'] += 1
            logger.warning(f"Trade data unavailable for {token_address}, using defaults: {e}")
            return TokenTradeData.default(token_address)

    # ============= Prices =============

    async def fetch_prices(self) -> Dict[str, Decimal]:
        """USD prices for SOL, BTC and ETH keyed by 'solana', 'bitcoin', 'ethereum'"""
        cached = await self.cache.get_decoded(
            CacheNamespace.PRICES, 'prices',
            lambda raw: {name: to_decimal(value) for name, value in raw.items()},
        )
        if cached is not MISS:
            self.stats['cache_hits'] += 1
            return cached

        prices: Dict[str, Decimal] = {name: Decimal(0) for name in PRICE_KEYS.values()}
        for mint in TokenMint:
            try:
                data = await self._get(f"{Endpoints.TOKEN_PRICE_ENDPOINT}{mint.value}", "birdeye.price")
            except SourceUnavailable as e:
                logger.warning(f"No price data available for {PRICE_KEYS[mint]}: {e}")
                continue
            prices[PRICE_KEYS[mint]] = to_decimal(data.get('value'))

        if any(price > 0 for price in prices.values()):
            await self.cache.set(
                CacheNamespace.PRICES, 'prices', {name: str(value) for name, value in prices.items()}
            )
        else:
            self.stats['defaults_served'] += 1
        return prices

    # ============= Trending =============

    async def fetch_trending_tokens(self, limit: int = 20) -> List[Dict[str, Any]]:
        """Trending Solana tokens; empty on failure"""
        try:
            data = await self._get(Endpoints.TOKEN_TRENDING_ENDPOINT, "birdeye.trending")
        except SourceUnavailable as e:
            logger.warning(f"Trending tokens unavailable: {e}")
            return []

        tokens = data.get('tokens') or []
        return [token for token in tokens if token.get('address')][:limit]

    def get_stats(self) -> Dict:
        """Get collector statistics"""
        return self.stats.copy()
