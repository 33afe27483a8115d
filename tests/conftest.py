# tests/conftest.py
"""
Global pytest configuration and fixtures
"""
import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from data.collectors.birdeye import BirdeyeCollector
from data.collectors.codex import CodexCollector
from data.collectors.dexscreener import DexScreenerCollector
from data.collectors.helius import HeliusCollector
from data.http_client import RetryingFetchClient
from data.processors.aggregator import TokenDataAggregator
from data.storage.cache import MemoryTTLCache, RedisCacheStore, TwoTierCache
from data.storage.database import InMemoryTrustScoreStore
from tests.fixtures.mock_data import (
    HOLDER_A,
    HOLDER_B,
    HOLDER_C,
    SOL_MINT,
    TOKEN_ADDRESS,
    MockDataGenerator,
)
from tests.fixtures.test_helpers import FakeClock, FakeRedis, FakeSession

# Test configuration
TEST_API_CONFIG = {
    "birdeye_api_key": "test-birdeye-key",
    "helius_api_key": "test-helius-key",
    "codex_api_key": "test-codex-key",
}


def healthy_routes(price: float = 1.5, sol_price: float = 150.0):
    """Every source answering with a well-formed payload"""
    def prices(method, url, body):
        if url.endswith(SOL_MINT):
            return MockDataGenerator.price_payload(sol_price)
        return MockDataGenerator.price_payload(30000.0)

    def rpc(method, url, body):
        if body and body.get("method") == "getTokenAccountsByOwner":
            return MockDataGenerator.owner_accounts_payload(["1500000", "500000"])
        return MockDataGenerator.holders_payload([
            (HOLDER_A, "100000"),
            (HOLDER_B, "10000"),
            (HOLDER_C, "2"),
        ])

    return {
        "/defi/token_security": MockDataGenerator.security_payload(),
        "/defi/token_overview": MockDataGenerator.overview_payload(price=price),
        "/defi/price": prices,
        "/defi/token_trending": MockDataGenerator.trending_payload([TOKEN_ADDRESS]),
        "dex/tokens/": MockDataGenerator.pairs_payload([
            MockDataGenerator.pair(liquidity=50000.0, market_cap=500000.0, pair_address="pair1"),
            MockDataGenerator.pair(liquidity=80000.0, market_cap=400000.0, pair_address="pair2", boosts=2),
        ]),
        "dex/search": MockDataGenerator.pairs_payload([MockDataGenerator.pair()]),
        "helius-rpc.com": rpc,
        "api.mainnet-beta.solana.com": rpc,
        "graph.codex.io": MockDataGenerator.codex_payload(),
    }


@pytest.fixture
def fake_session():
    """aiohttp-compatible session with every source healthy"""
    return FakeSession(healthy_routes())


@pytest.fixture
def fetch_client(fake_session):
    """Retrying client without backoff delays"""
    return RetryingFetchClient({"max_retries": 3, "retry_delay": 0}, session=fake_session)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_redis(clock):
    return FakeRedis(clock=clock)


@pytest.fixture
def cache(clock):
    """Fast tier only"""
    return TwoTierCache(MemoryTTLCache(clock=clock))


@pytest.fixture
def durable_cache(clock, fake_redis):
    """Both tiers, durable tier backed by the redis fake"""
    return TwoTierCache(MemoryTTLCache(clock=clock), RedisCacheStore(client=fake_redis))


@pytest.fixture
def birdeye(fetch_client, cache):
    return BirdeyeCollector(fetch_client, cache, TEST_API_CONFIG)


@pytest.fixture
def dexscreener(fetch_client, cache):
    return DexScreenerCollector(fetch_client, cache, TEST_API_CONFIG)


@pytest.fixture
def helius(fetch_client, cache):
    return HeliusCollector(fetch_client, cache, TEST_API_CONFIG)


@pytest.fixture
def codex(fetch_client, cache):
    return CodexCollector(fetch_client, cache, TEST_API_CONFIG)


@pytest.fixture
def aggregator(birdeye, dexscreener, helius, codex, cache):
    return TokenDataAggregator(birdeye, dexscreener, helius, codex, cache)


@pytest.fixture
def store():
    return InMemoryTrustScoreStore()


@pytest.fixture
def token_address():
    return TOKEN_ADDRESS
