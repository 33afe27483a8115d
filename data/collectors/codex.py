"""
Codex GraphQL Integration
Token metadata: name, symbol, verification and scam flags
"""

from typing import Dict, Optional

from loguru import logger

from config.settings import Endpoints
from data.http_client import RetryingFetchClient
from data.models import TokenCodex
from data.storage.cache import MISS, TwoTierCache
from utils.constants import CODEX_SOLANA_NETWORK_ID, CacheNamespace
from utils.errors import SourceUnavailable

TOKEN_QUERY = """
query Token($address: String!, $networkId: Int!) {
  token(input: { address: $address, networkId: $networkId }) {
    id
    address
    cmcId
    decimals
    name
    symbol
    totalSupply
    isScam
    info {
      circulatingSupply
      imageThumbUrl
    }
    explorerData {
      blueCheckmark
    }
  }
}
"""


class CodexCollector:
    """Codex metadata collector"""

    SOURCE = "codex"

    def __init__(self, client: RetryingFetchClient, cache: TwoTierCache, config: Optional[Dict] = None):
        config = config or {}
        self.client = client
        self.cache = cache
        self.api_key = config.get('codex_api_key', '')
        self.endpoint = config.get('codex_graphql', Endpoints.CODEX_GRAPHQL)
        self.network_id = config.get('network_id', CODEX_SOLANA_NETWORK_ID)

        self.stats = {
            'cache_hits': 0,
            'fetches': 0,
        }

    async def load_token_codex(self, token_address: str) -> TokenCodex:
        """
        Registry metadata for a token

        Raises:
            SourceUnavailable: on transport failure, GraphQL errors or unknown token
        """
        cached = await self.cache.get_decoded(CacheNamespace.CODEX, token_address, TokenCodex.from_dict)
        if cached is not MISS:
            self.stats['cache_hits'] += 1
            return cached

        self.stats['fetches'] += 1
        payload = await self.client.post_json(
            self.endpoint,
            {
                'query': TOKEN_QUERY,
                'variables': {'address': token_address, 'networkId': self.network_id},
            },
            headers={'Content-Type': 'application/json', 'Authorization': self.api_key},
            source="codex.token",
        )

        if not isinstance(payload, dict):
            raise SourceUnavailable("Codex returned a non-object payload", source="codex.token")
        if payload.get('errors'):
            messages = ', '.join(str(err.get('message', err)) for err in payload['errors'])
            raise SourceUnavailable(f"GraphQL error: {messages}", source="codex.token")

        token = (payload.get('data') or {}).get('token')
        if not token:
            raise SourceUnavailable(f"No token data returned for {token_address}", source="codex.token")

        codex = TokenCodex.from_api(token)
        await self.cache.set(CacheNamespace.CODEX, token_address, codex.to_dict())
        return codex

    async def fetch_token_codex(self, token_address: str) -> TokenCodex:
        """Registry metadata, or the default record when the source fails"""
        try:
            return await self.load_token_codex(token_address)
        except SourceUnavailable as e:
            logger.warning(f"Codex data unavailable for {token_address}: {e}")
            return TokenCodex.default(token_address)

    def get_stats(self) -> Dict:
        """Get collector statistics"""
        return self.stats.copy()
