"""
Helius RPC Integration
Largest token holders and owner balances over Solana JSON-RPC
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from loguru import logger

from config.settings import Endpoints
from data.http_client import RetryingFetchClient
from data.models import HolderRecord
from data.storage.cache import MISS, TwoTierCache
from utils.constants import CacheNamespace
from utils.errors import SourceUnavailable
from utils.helpers import to_decimal


class HeliusCollector:
    """Ledger RPC collector for holder data"""

    SOURCE = "helius"

    def __init__(self, client: RetryingFetchClient, cache: TwoTierCache, config: Optional[Dict] = None):
        """
        Initialize Helius collector

        Args:
            client: Shared retrying fetch client
            cache: Two-tier cache
            config: Configuration dictionary (helius_api_key, helius_rpc, rpc_url)
        """
        config = config or {}
        self.client = client
        self.cache = cache
        self.api_key = config.get('helius_api_key', '')
        self.rpc_url = f"{config.get('helius_rpc', Endpoints.HELIUS_RPC)}{self.api_key}"
        self.public_rpc_url = config.get('rpc_url', Endpoints.DEFAULT_RPC)

        self.stats = {
            'cache_hits': 0,
            'fetches': 0,
            'holders_found': 0,
        }

    async def _rpc(self, url: str, method: str, params: List[Any], source: str) -> Any:
        payload = {
            'jsonrpc': '2.0',
            'id': 1,
            'method': method,
            'params': params,
        }
        self.stats['fetches'] += 1
        response = await self.client.post_json(
            url, payload, headers={'Content-Type': 'application/json'}, source=source
        )
        if not isinstance(response, dict) or 'error' in response:
            error = response.get('error') if isinstance(response, dict) else response
            raise SourceUnavailable(f"{method} returned an error: {error}", source=source)
        return response.get('result')

    @staticmethod
    def _parse_holders(result: Any) -> List[HolderRecord]:
        accounts = (result or {}).get('value') if isinstance(result, dict) else None
        if not isinstance(accounts, list):
            raise SourceUnavailable("getTokenLargestAccounts returned no account list", source="helius.holders")

        holders = []
        for account in accounts:
            address = account.get('address')
            # Prefer the decimal-adjusted amount so balances share units with supply and price
            amount = account.get('uiAmountString') or account.get('amount')
            if not address or not amount:
                logger.debug(f"Skipping invalid account data: {account}")
                continue
            holders.append(HolderRecord(address=address, balance=to_decimal(amount)))
        return holders

    async def load_holder_list(self, token_address: str) -> List[HolderRecord]:
        """
        Largest holders, ordered by balance descending

        Raises:
            SourceUnavailable: when the RPC fails after retries
        """
        cached = await self.cache.get_decoded(
            CacheNamespace.HOLDERS, token_address, lambda raw: [HolderRecord.from_dict(h) for h in raw]
        )
        if cached is not MISS:
            self.stats['cache_hits'] += 1
            return cached

        result = await self._rpc(self.rpc_url, 'getTokenLargestAccounts', [token_address], "helius.holders")
        holders = sorted(self._parse_holders(result), key=lambda h: h.balance, reverse=True)
        self.stats['holders_found'] += len(holders)

        # An empty list is a valid "no large holders" answer and is cached too
        await self.cache.set(CacheNamespace.HOLDERS, token_address, [h.to_dict() for h in holders])
        return holders

    async def fetch_holder_list(self, token_address: str) -> List[HolderRecord]:
        """Largest holders, or an empty list when the RPC fails"""
        try:
            return await self.load_holder_list(token_address)
        except SourceUnavailable as e:
            logger.warning(f"Holder list unavailable for {token_address}: {e}")
            return []

    async def fetch_owner_token_balance(self, owner: str, mint: str) -> Decimal:
        """Sum of the owner's token accounts for a mint; zero on failure"""
        params = [owner, {'mint': mint}, {'encoding': 'jsonParsed'}]
        try:
            result = await self._rpc(self.public_rpc_url, 'getTokenAccountsByOwner', params, "rpc.balance")
        except SourceUnavailable as e:
            logger.warning(f"Token balance unavailable for {owner}: {e}")
            return Decimal(0)

        total = Decimal(0)
        for account in (result or {}).get('value') or []:
            token_amount = (
                account.get('account', {})
                .get('data', {})
                .get('parsed', {})
                .get('info', {})
                .get('tokenAmount', {})
            )
            total += to_decimal(token_amount.get('uiAmountString'))
        return total

    def get_stats(self) -> Dict:
        """Get collector statistics"""
        return self.stats.copy()
